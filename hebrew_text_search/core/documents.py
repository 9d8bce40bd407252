"""Document source collaborator: the engine reads the corpus only through this interface."""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from .errors import CorpusSourceError, SearchEngineError


@dataclass(frozen=True)
class Document:
    """A corpus document."""

    id: str
    text: str
    title: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


class DocumentSource(ABC):
    """Read-only view of a corpus supplied by an external collaborator."""

    @abstractmethod
    def count(self) -> int:
        """Number of documents in the live corpus."""

    @abstractmethod
    def iter_documents(self, ids: Optional[Sequence[str]] = None) -> Iterator[Document]:
        """Iterate documents in corpus order, optionally restricted to ids."""

    @abstractmethod
    def get(self, document_id: str) -> Optional[Document]:
        """Get one document by id."""


class InMemoryDocumentSource(DocumentSource):
    """Document source backed by an ordered in-memory snapshot."""

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        self._lock = threading.Lock()
        self._documents: Dict[str, Document] = {}
        self.replace(documents)

    def replace(self, documents: Iterable[Document]) -> None:
        """Replace the whole snapshot."""
        snapshot = {document.id: document for document in documents}
        with self._lock:
            self._documents = snapshot

    def add(self, document: Document) -> None:
        """Add or replace one document."""
        with self._lock:
            documents = dict(self._documents)
            documents[document.id] = document
            self._documents = documents

    def clear(self) -> None:
        """Remove all documents."""
        with self._lock:
            self._documents = {}

    def count(self) -> int:
        return len(self._documents)

    def iter_documents(self, ids: Optional[Sequence[str]] = None) -> Iterator[Document]:
        documents = self._documents
        if ids is None:
            return iter(list(documents.values()))
        return iter([documents[document_id] for document_id in ids if document_id in documents])

    def get(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def list_documents(self) -> List[Document]:
        """Snapshot of all documents in corpus order."""
        return list(self._documents.values())


def guarded(documents: Iterable[Document]) -> Iterator[Document]:
    """
    Iterate documents, converting collaborator failures into CorpusSourceError.

    Args:
        documents: Documents supplied by the external source

    Yields:
        Documents in source order
    """
    try:
        iterator = iter(documents)
    except SearchEngineError:
        raise
    except Exception as e:
        raise CorpusSourceError(f"Document source failed: {e}") from e
    while True:
        try:
            document = next(iterator)
        except StopIteration:
            return
        except SearchEngineError:
            raise
        except Exception as e:
            raise CorpusSourceError(f"Document source failed: {e}") from e
        yield document


def read_documents(source: DocumentSource, ids: Optional[Sequence[str]] = None) -> Iterator[Document]:
    """
    Read documents from a source, failing with CorpusSourceError.

    Failures raised by the source call itself surface here; failures raised
    while iterating surface on the next read.

    Args:
        source: Document source
        ids: Restrict the read to these documents

    Returns:
        Iterator over the documents in source order
    """
    try:
        documents = source.iter_documents(ids)
    except SearchEngineError:
        raise
    except Exception as e:
        raise CorpusSourceError(f"Document source failed: {e}") from e
    return guarded(documents)


def count_documents(source: DocumentSource) -> int:
    """Live document count of a source, failing with CorpusSourceError."""
    try:
        return source.count()
    except SearchEngineError:
        raise
    except Exception as e:
        raise CorpusSourceError(f"Document source failed: {e}") from e


def fetch_document(source: DocumentSource, document_id: str) -> Optional[Document]:
    """One document from a source, failing with CorpusSourceError."""
    try:
        return source.get(document_id)
    except SearchEngineError:
        raise
    except Exception as e:
        raise CorpusSourceError(f"Document source failed: {e}", document_id=document_id) from e
