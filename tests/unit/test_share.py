"""Unit tests for shareable query tokens."""

import base64
import json
from urllib.parse import quote, unquote

import pytest
from hebrew_text_search.core.share import (
    decode_shared_query,
    encode_shared_query,
    share_query_string,
)
from hebrew_text_search.models.request import FilterRules, ListCondition, ListSpec, TermCondition


def _payload(token):
    return json.loads(unquote(base64.b64decode(token).decode("ascii")))


def _token(payload):
    raw = json.dumps(payload, ensure_ascii=False)
    return base64.b64encode(quote(raw, safe="").encode("ascii")).decode("ascii")


class TestShareTokens:
    """Test cases for encoding and decoding shared queries."""

    @pytest.fixture
    def conditions(self):
        return [
            TermCondition(id="c1", term="שלום"),
            ListCondition(id="c2", list_spec=ListSpec(words=["ספר", "דף"], mode="all"), logical_operator="OR"),
        ]

    def test_token_is_ascii(self, conditions):
        token = encode_shared_query(conditions)
        assert token.isascii()

    def test_decode_restores_state(self, conditions):
        token = encode_shared_query(conditions, FilterRules(min_words=2, must_contain=["דף"]), text="טקסט")

        shared = decode_shared_query(token)

        assert shared is not None
        assert [condition.id for condition in shared.conditions] == ["c1", "c2"]
        assert shared.conditions[0].term == "שלום"
        assert shared.conditions[1].list_spec.words == ["ספר", "דף"]
        assert shared.conditions[1].logical_operator == "OR"
        assert shared.filter_rules.min_words == 2
        assert shared.filter_rules.must_contain == ["דף"]
        assert shared.text == "טקסט"

    def test_payload_layout(self, conditions):
        """Filter rules travel under 'filterRules'; empty parts are left out."""
        payload = _payload(encode_shared_query(conditions, FilterRules(min_words=2)))
        assert set(payload) == {"conditions", "filterRules"}
        assert payload["conditions"][1]["list"]["mode"] == "all"

        assert _payload(encode_shared_query()) == {}

    def test_decode_externally_built_token(self):
        """Tokens built as base64 of the URI-encoded JSON are accepted."""
        token = _token({
            "conditions": [{"id": "c1", "operator": "contains", "term": "שלום"}],
            "filterRules": {"min_words": 2},
        })
        shared = decode_shared_query(token)
        assert shared.conditions[0].term == "שלום"
        assert shared.filter_rules.min_words == 2

    def test_unknown_fields_ignored(self):
        token = _token({"conditions": [], "searchMode": "advanced", "text": "abc"})
        shared = decode_shared_query(token)
        assert shared is not None
        assert shared.text == "abc"

    def test_url_safe_alphabet_without_padding(self, conditions):
        token = encode_shared_query(conditions, text="?>?>")
        url_safe = token.replace("+", "-").replace("/", "_").rstrip("=")
        shared = decode_shared_query(url_safe)
        assert shared is not None
        assert shared.text == "?>?>"

    @pytest.mark.parametrize("token", [
        "",
        None,
        "@@@",
        base64.b64encode(b"not%20json").decode("ascii"),
        base64.b64encode(b"%5B1%5D").decode("ascii"),
        base64.b64encode("שלום".encode("utf-8")).decode("ascii"),
        base64.b64encode(b"%FF").decode("ascii"),
    ])
    def test_malformed_tokens_rejected(self, token):
        assert decode_shared_query(token) is None

    def test_invalid_condition_rejects_whole_token(self):
        token = _token({"conditions": [{"id": "c1", "operator": "contains", "term": "ok"}, {"operator": "bogus"}]})
        assert decode_shared_query(token) is None

    def test_share_query_string(self):
        assert share_query_string("ab+/=") == "search=ab%2B%2F%3D"
