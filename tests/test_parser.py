"""Tests for response parsing."""

from imapcl.imap.parser import (
    extract_fetch_part,
    is_fetch_payload,
    normalize_message_part,
    parse_inline_value,
    parse_search_uids,
    parse_uidvalidity,
    select_canonical_headers,
)


SELECT_RESPONSE = (
    "* FLAGS (\\Answered \\Seen)\r\n"
    "* 4 EXISTS\r\n"
    "* OK [UIDVALIDITY 3857529045] UIDs valid\r\n"
    "* OK [UIDNEXT 4392] Predicted next UID\r\n"
    "a002 OK [READ-WRITE] SELECT completed\r\n"
)


def fetch_response(data: str, tag: str = "a005") -> str:
    return (
        f"* 1 FETCH (UID 12 BODY[1] {{{len(data)}}}\r\n"
        f"{data})\r\n"
        f"{tag} OK UID FETCH completed\r\n"
    )


class TestParseUidvalidity:
    def test_from_select(self):
        assert parse_uidvalidity(SELECT_RESPONSE) == 3857529045

    def test_case_insensitive(self):
        assert parse_uidvalidity("* ok [uidvalidity 17] fine\r\n") == 17

    def test_missing(self):
        assert parse_uidvalidity("* 4 EXISTS\r\na002 OK SELECT completed\r\n") is None

    def test_tagged_line_ignored(self):
        assert parse_uidvalidity("a002 OK [UIDVALIDITY 5] done\r\n") is None


class TestParseSearchUids:
    def test_server_order_kept(self):
        parsed = parse_search_uids("* SEARCH 84 2 882\r\na004 OK SEARCH completed\r\n")
        assert parsed.found
        assert parsed.uids == [84, 2, 882]

    def test_empty_result(self):
        parsed = parse_search_uids("* SEARCH\r\na004 OK SEARCH completed\r\n")
        assert parsed.found
        assert parsed.uids == []

    def test_missing_search_line(self):
        parsed = parse_search_uids("a004 OK SEARCH completed\r\n")
        assert not parsed.found
        assert parsed.uids == []

    def test_stops_at_non_number(self):
        parsed = parse_search_uids("* SEARCH 1 2 (MODSEQ 917162500)\r\na4 OK done\r\n")
        assert parsed.uids == [1, 2]


class TestFetchEnvelope:
    def test_is_fetch_payload(self):
        assert is_fetch_payload(fetch_response("x\r\n"))
        assert not is_fetch_payload("a005 OK UID FETCH completed\r\n")

    def test_literal_body(self):
        body = "Hello\r\nWorld\r\n"
        assert extract_fetch_part(fetch_response(body)) == body

    def test_items_after_literal_are_not_content(self):
        response = (
            "* 1 FETCH (UID 1 BODY[1] {13}\r\n"
            "hello world\r\n"
            " FLAGS (\\Seen))\r\n"
            "a005 OK UID FETCH completed\r\n"
        )
        assert normalize_message_part(response, is_header=False) == "hello world\r\n"

    def test_literal_size_counts_bytes(self):
        body = "gr\u00fc\u00dfe)\r\n"
        response = (
            f"* 1 FETCH (UID 1 BODY[1] {{{len(body.encode())}}}\r\n{body})\r\n"
            "a005 OK done\r\n"
        ).encode()
        assert extract_fetch_part(response) == body

    def test_unsolicited_lines_before_fetch(self):
        response = (
            "* 4 EXISTS\r\n"
            "* 2 EXPUNGE\r\n"
            "* 3 FETCH (FLAGS (\\Seen))\r\n"
            + fetch_response("payload\r\n")
        )
        assert extract_fetch_part(response) == "payload\r\n"

    def test_skips_literal_of_other_response(self):
        response = (
            "* 2 FETCH (UID 7 RFC822.HEADER {25}\r\n"
            "* 9 FETCH (BODY[1] NIL)\r\n"
            ")\r\n"
            + fetch_response("real\r\n")
        )
        assert extract_fetch_part(response) == "real\r\n"

    def test_no_item(self):
        assert extract_fetch_part("* 1 FETCH (UID 12)\r\na5 OK done\r\n") is None
        assert normalize_message_part("a5 OK done\r\n", is_header=True) is None

    def test_body_line_mentioning_ok_survives(self):
        body = "Line one\r\nEverything OK now)\r\n"
        assert normalize_message_part(fetch_response(body), is_header=False) == body

    def test_body_ending_in_completion_like_line(self):
        body = "quoted reply\r\na1 OK\r\n"
        assert normalize_message_part(fetch_response(body), is_header=False) == body

    def test_inline_item(self):
        assert extract_fetch_part('* 1 FETCH (UID 12 BODY[1] "x")\r\na5 OK done\r\n') == "x"
        assert extract_fetch_part("* 1 FETCH (UID 12 BODY[1] NIL)\r\na5 OK done\r\n") == ""


class TestInlineValue:
    def test_quoted(self):
        assert parse_inline_value('* 1 FETCH (UID 12 BODY[1] "short body")') == "short body"

    def test_escapes(self):
        assert parse_inline_value(r'* 1 FETCH (BODY[1] "say \"hi\" \\o/")') == 'say "hi" \\o/'

    def test_nil(self):
        assert parse_inline_value("* 1 FETCH (UID 12 BODY[1] NIL)") == ""

    def test_nothing(self):
        assert parse_inline_value("* 1 FETCH (UID 12 FLAGS (\\Seen))") is None


class TestCanonicalHeaders:
    def test_order_and_filtering(self):
        block = (
            "Received: from mx.example.com\r\n"
            "Subject: Hello\r\n"
            "Message-ID: <abc@example.com>\r\n"
            "X-Mailer: test\r\n"
            "To: bob@example.com\r\n"
            "From: alice@example.com\r\n"
            "Date: Mon, 1 Jan 2024 10:00:00 +0000\r\n"
        )
        assert select_canonical_headers(block) == (
            "Date: Mon, 1 Jan 2024 10:00:00 +0000\r\n"
            "From: alice@example.com\r\n"
            "To: bob@example.com\r\n"
            "Subject: Hello\r\n"
            "Message-ID: <abc@example.com>\r\n"
        )

    def test_case_insensitive_names(self):
        block = "subject: lower\r\nDATE: upper\r\n"
        assert select_canonical_headers(block) == "DATE: upper\r\nsubject: lower\r\n"

    def test_folded_lines_stay_with_field(self):
        block = (
            "Subject: a long subject\r\n"
            "\tcontinued here\r\n"
            "X-Other: dropped\r\n"
            " also dropped\r\n"
        )
        assert select_canonical_headers(block) == "Subject: a long subject\r\n\tcontinued here\r\n"

    def test_missing_fields_omitted(self):
        assert select_canonical_headers("From: a@example.com\r\n") == "From: a@example.com\r\n"

    def test_bare_lf_input(self):
        assert select_canonical_headers("To: x@example.com\nSubject: s\n") == (
            "To: x@example.com\r\nSubject: s\r\n"
        )

    def test_normalize_header_response(self):
        header = "Subject: Hi\r\nFrom: a@example.com\r\n\r\n"
        assert normalize_message_part(fetch_response(header), is_header=True) == (
            "From: a@example.com\r\nSubject: Hi\r\n"
        )
