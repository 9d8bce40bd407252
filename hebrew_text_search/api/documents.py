"""Corpus API endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Path
from fastapi.responses import JSONResponse

from ..core.errors import CorpusSourceError, SearchEngineError
from ..models.request import DocumentIn, LoadDocumentsRequest

router = APIRouter(prefix="/api/v1", tags=["documents"])

# Import the global search engine instance
from ..engine_instance import search_engine


@router.post(
    "/documents",
    summary="Load documents",
    description="Replace the corpus snapshot the engine searches"
)
async def load_documents(request: LoadDocumentsRequest) -> JSONResponse:
    """
    Replace the corpus with the given documents.

    A loaded index turns invalid when the document count changes; rebuild it
    to get index-backed searches again.
    """
    try:
        count = search_engine.load_documents(request.documents)
        return JSONResponse(
            status_code=200,
            content={
                "message": "Documents loaded successfully",
                "total_documents": count,
                "index_valid": search_engine.index_status().valid,
            }
        )

    except CorpusSourceError as e:
        raise HTTPException(status_code=502, detail=f"Document source failed: {str(e)}")
    except SearchEngineError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to load documents: {str(e)}"
        )


@router.get(
    "/documents",
    response_model=List[Dict[str, Any]],
    summary="List documents",
    description="List ids, titles and sizes of the corpus documents"
)
async def list_documents() -> List[Dict[str, Any]]:
    """List the corpus documents without their text."""
    try:
        return [
            {"id": document.id, "title": document.title, "characters": len(document.text)}
            for document in search_engine.list_documents()
        ]

    except CorpusSourceError as e:
        raise HTTPException(status_code=502, detail=f"Document source failed: {str(e)}")
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list documents: {str(e)}"
        )


@router.get(
    "/documents/{document_id}",
    response_model=DocumentIn,
    summary="Get a document",
    description="Get one corpus document including its text"
)
async def get_document(
    document_id: str = Path(..., description="Document identifier")
) -> DocumentIn:
    """Get a single document."""
    try:
        document = search_engine.get_document(document_id)
    except CorpusSourceError as e:
        raise HTTPException(status_code=502, detail=f"Document source failed: {str(e)}")

    if document is None:
        raise HTTPException(
            status_code=404,
            detail=f"Document '{document_id}' not found"
        )
    return DocumentIn(id=document.id, text=document.text, title=document.title, metadata=document.metadata)


@router.delete(
    "/documents",
    summary="Clear documents",
    description="Remove every document from the corpus"
)
async def clear_documents() -> JSONResponse:
    """Remove all documents."""
    try:
        search_engine.clear_documents()
        return JSONResponse(status_code=200, content={"message": "Documents cleared"})

    except SearchEngineError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to clear documents: {str(e)}"
        )
