import pytest

from infraguard.tokens import (
    RuleSyntaxError,
    Token,
    TokenKind,
    TokenStream,
    check_balance,
    parse_advisor_tokens,
    parse_tokens,
)


def test_parse_tokens_with_escaped_quotes():
    rule = (
        r'body="href=\"http://www.thinkphp.cn\">thinkphp</a>" || '
        r'body="thinkphp_show_page_trace" || icon="f49c4a4bde1eec6c0b80c2277c76e3dbs"'
    )
    assert parse_tokens(rule) == [
        Token(TokenKind.BODY, "body"),
        Token(TokenKind.CONTAINS, "="),
        Token(TokenKind.TEXT, 'href="http://www.thinkphp.cn">thinkphp</a>'),
        Token(TokenKind.OR, "||"),
        Token(TokenKind.BODY, "body"),
        Token(TokenKind.CONTAINS, "="),
        Token(TokenKind.TEXT, "thinkphp_show_page_trace"),
        Token(TokenKind.OR, "||"),
        Token(TokenKind.ICON, "icon"),
        Token(TokenKind.CONTAINS, "="),
        Token(TokenKind.TEXT, "f49c4a4bde1eec6c0b80c2277c76e3dbs"),
    ]


def test_parse_tokens_regex_backslashes_are_escapes():
    rule = "body~=\"(<center><strong>EZCMS ([\\d\\.]+) )\""
    assert parse_tokens(rule) == [
        Token(TokenKind.BODY, "body"),
        Token(TokenKind.REGEX_EQUAL, "~="),
        Token(TokenKind.TEXT, "(<center><strong>EZCMS ([d.]+) )"),
    ]


@pytest.mark.parametrize("rule", ['body~~"test operator"', 'body~!"test operator"'])
def test_invalid_operator(rule):
    with pytest.raises(RuleSyntaxError, match="invalid operator"):
        parse_tokens(rule)


@pytest.mark.parametrize(
    "rule, message",
    [
        ('"\\', "invalid escape"),
        ('"abc\\', "invalid escape"),
        ('"abc\\"', "unterminated"),
    ],
)
def test_strange_tokens_fail(rule, message):
    with pytest.raises(RuleSyntaxError, match=message):
        parse_tokens(rule)


def test_escaped_quote_inside_text():
    assert parse_tokens('"abc\\""') == [Token(TokenKind.TEXT, 'abc"')]


def test_parse_advisor_tokens():
    rule = 'version >= "1.0.0" || version < "2.0.0" || version == "3.0.0"'
    kinds = [token.kind for token in parse_advisor_tokens(rule)]
    assert kinds == [
        TokenKind.VERSION, TokenKind.GTE, TokenKind.TEXT, TokenKind.OR,
        TokenKind.VERSION, TokenKind.LT, TokenKind.TEXT, TokenKind.OR,
        TokenKind.VERSION, TokenKind.FULL_EQUAL, TokenKind.TEXT,
    ]


def test_advisor_is_internal_keyword():
    assert parse_advisor_tokens('is_internal="true"')[0] == Token(
        TokenKind.IS_INTERNAL, "is_internal"
    )


def test_fingerprint_keywords_reject_version():
    with pytest.raises(RuleSyntaxError, match="unknown text"):
        parse_tokens('version > "1"')


def test_advisor_keywords_reject_body():
    with pytest.raises(RuleSyntaxError, match="unknown text"):
        parse_advisor_tokens('body="x"')


def test_brackets_and_whitespace():
    tokens = parse_tokens('(\tbody="a"\n)')
    assert [t.kind for t in tokens] == [
        TokenKind.LEFT_BRACKET, TokenKind.BODY, TokenKind.CONTAINS,
        TokenKind.TEXT, TokenKind.RIGHT_BRACKET,
    ]


def test_check_balance_ok_and_failing():
    check_balance(parse_tokens('(body="a" && (header="b"))'))
    with pytest.raises(RuleSyntaxError, match="unbalanced"):
        check_balance(parse_tokens('(body="a"'))


def test_token_stream_walk():
    stream = TokenStream(parse_tokens('body="a"'))
    assert stream.next().kind is TokenKind.BODY
    assert stream.next().kind is TokenKind.CONTAINS
    stream.rewind()
    assert stream.next().kind is TokenKind.CONTAINS
    assert stream.next().content == "a"
    assert stream.has_next() is False
    with pytest.raises(RuleSyntaxError):
        stream.next()