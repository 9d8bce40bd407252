"""Request models for API endpoints and engine calls."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


LogicalOperator = Literal["AND", "OR", "NOT"]
TermOperator = Literal["contains", "not_contains", "starts_with", "ends_with", "exact", "regex"]

# Numeric rule fields accept raw user input; bad values are reported when the rule is used.
NumberLike = Union[int, float, str, None]


def _new_condition_id() -> str:
    return uuid4().hex[:8]


class SmartSearchOptions(BaseModel):
    """Linguistic normalization switches for a single condition."""

    model_config = ConfigDict(frozen=True)

    diacritic_insensitive: bool = Field(default=True, description="Ignore vowel and cantillation marks")
    final_letterform_insensitive: bool = Field(
        default=True, description="Treat word-final letter shapes as their standard forms"
    )
    numeral_letter_equivalence: bool = Field(
        default=True, description="Match digits against letter numerals and back"
    )
    morphological_variants: bool = Field(
        default=True, description="Add definite-article and plural variants"
    )
    numeric_value_equivalence: bool = Field(
        default=False, description="Add known words sharing the same letter-numeral value"
    )
    abbreviation_expansion: bool = Field(default=False, description="Expand known abbreviations")
    case_insensitive: bool = Field(default=True, description="Ignore letter case")
    whole_word: bool = Field(default=False, description="Always require word boundaries")


class _ConditionBase(BaseModel):
    """Fields shared by every condition variant."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_condition_id, description="Condition identifier")
    search_in_word: bool = Field(
        default=False, description="Allow matches inside a word instead of whole words only"
    )
    smart_options: SmartSearchOptions = Field(default_factory=SmartSearchOptions)
    logical_operator: Optional[LogicalOperator] = Field(
        default=None, description="Operator joining this condition to the previous ones"
    )


class TermCondition(_ConditionBase):
    """A condition on a single term (or a raw regular expression)."""

    operator: TermOperator = "contains"
    term: str = Field(default="", description="Search term")


class NearSpec(BaseModel):
    """Paired word and maximum word distance for proximity conditions."""

    word: str = Field(default="", description="Word that must appear near the term")
    distance: NumberLike = Field(default=5, description="Maximum number of words between the two")


class NearCondition(_ConditionBase):
    """Term A must appear within a number of words of term B."""

    operator: Literal["near"] = "near"
    term: str = Field(default="", description="Primary term")
    near: NearSpec = Field(default_factory=NearSpec)


class ListSpec(BaseModel):
    """Word list with any/all matching mode."""

    words: List[str] = Field(default_factory=list, description="Words to look for")
    mode: Literal["any", "all"] = Field(default="any", description="Match any word or all words")


class ListCondition(_ConditionBase):
    """A list of words matched with any/all semantics."""

    operator: Literal["list"] = "list"
    list_spec: ListSpec = Field(default_factory=ListSpec, alias="list")


class PatternSpec(BaseModel):
    """Preset id or custom structural expression."""

    preset_id: Optional[str] = Field(default=None, description="Preset pattern identifier")
    custom_expression: Optional[str] = Field(default=None, description="Custom regular expression")


class PatternCondition(_ConditionBase):
    """A structural pattern applied to the unnormalized segment text."""

    operator: Literal["pattern"] = "pattern"
    pattern: PatternSpec = Field(default_factory=PatternSpec)


SearchCondition = Annotated[
    Union[TermCondition, NearCondition, ListCondition, PatternCondition],
    Field(discriminator="operator"),
]


class PositionRule(BaseModel):
    """Positional post-match predicate."""

    kind: Literal["relative", "line_position"] = Field(..., description="Rule kind")
    word: str = Field(default="", description="Word the rule is about")
    other_word: str = Field(default="", description="Reference word for relative rules")
    order: Literal["before", "after", "any"] = Field(default="any")
    max_distance: NumberLike = Field(default=None, description="Maximum words between the two words")
    position: Literal["start", "middle", "end"] = Field(default="start")
    within_words: NumberLike = Field(default=None, description="Window size in words")
    percentage: NumberLike = Field(default=None, description="Window size as a percentage of the segment")


class FilterRules(BaseModel):
    """Post-match predicates; they can only reject a match."""

    min_words: NumberLike = None
    max_words: NumberLike = None
    min_chars: NumberLike = None
    max_chars: NumberLike = None
    must_contain: List[str] = Field(default_factory=list)
    must_not_contain: List[str] = Field(default_factory=list)
    must_contain_numbers: bool = False
    letters_only: bool = False
    position_rules: List[PositionRule] = Field(default_factory=list)

    @field_validator("must_contain", "must_not_contain", mode="before")
    @classmethod
    def coerce_single_string(cls, v: Any) -> Any:
        """Accept a single string where a list is expected."""
        if isinstance(v, str):
            return [v] if v else []
        return v


class SearchOptions(BaseModel):
    """Query execution options."""

    scope: Literal["all", "selected", "text"] = Field(default="all", description="Search scope")
    limit: Optional[int] = Field(default=None, ge=1, description="Maximum number of results")
    use_index: bool = Field(default=True, description="Use the inverted index when it is valid")
    selected_ids: List[str] = Field(default_factory=list, description="Documents for the 'selected' scope")


class SearchRequest(BaseModel):
    """Request model for structured searches."""

    conditions: List[SearchCondition] = Field(..., min_length=1, description="Search conditions")
    filter_rules: Optional[FilterRules] = Field(default=None, description="Post-match filters")
    options: SearchOptions = Field(default_factory=SearchOptions)
    text: Optional[str] = Field(default=None, description="Ad hoc text for the 'text' scope")

    @model_validator(mode="after")
    def check_scope(self) -> "SearchRequest":
        """Ad hoc text implies the 'text' scope and the 'text' scope requires text."""
        if self.text is not None and self.options.scope != "text":
            self.options = self.options.model_copy(update={"scope": "text"})
        if self.options.scope == "text" and self.text is None:
            raise ValueError("The 'text' scope requires a text field")
        return self


class DocumentIn(BaseModel):
    """A document supplied by the document collaborator."""

    id: str = Field(..., min_length=1, description="Document identifier")
    text: str = Field(..., description="Full document text")
    title: str = Field(default="", description="Document title")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata")


class LoadDocumentsRequest(BaseModel):
    """Replace the corpus snapshot."""

    documents: List[DocumentIn] = Field(..., description="Corpus documents")

    @field_validator("documents")
    @classmethod
    def validate_unique_ids(cls, v: List[DocumentIn]) -> List[DocumentIn]:
        """Reject duplicate document ids."""
        ids = [doc.id for doc in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Document ids must be unique")
        return v


class ShareEncodeRequest(BaseModel):
    """Query state to encode into a shareable token."""

    conditions: List[SearchCondition] = Field(default_factory=list)
    filter_rules: Optional[FilterRules] = None
    text: Optional[str] = None


class ValidateRequest(BaseModel):
    """Conditions and filters to check against a sample text."""

    conditions: List[SearchCondition] = Field(..., min_length=1, description="Conditions to check")
    filter_rules: Optional[FilterRules] = Field(default=None, description="Filters to check")
    text: str = Field(..., description="Sample text")
