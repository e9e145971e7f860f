import pytest

from infraguard.syntax import (
    AdvisoryConfig,
    MatchConfig,
    Version,
    normalize_version,
    transform_exp,
)
from infraguard.tokens import RuleSyntaxError, check_balance, parse_advisor_tokens, parse_tokens


def fp_rule(text):
    tokens = parse_tokens(text)
    check_balance(tokens)
    return transform_exp(tokens)


def adv_rule(text):
    tokens = parse_advisor_tokens(text)
    check_balance(tokens)
    return transform_exp(tokens)


def test_single_rule_with_unknown_keyword_fails():
    rule = 'body~="123123" && (title == "title" || header="X-Powered-By: Express")'
    with pytest.raises(RuleSyntaxError, match="unknown text"):
        parse_tokens(rule)


def test_regex_rule_matches():
    rule = fp_rule('body~="123123" && (icon="23333" || header="X-Powered-By: Express")')
    assert rule.eval(MatchConfig(body="1111231232233", header="", icon=23333)) is True


def test_transform_unknown_keyword_fails():
    rule = (
        'header="realm=\\"Comtrend Gigabit 802.11n Router" || '
        'banner="Comtrend Gigabit 802.11n Router"'
    )
    with pytest.raises(RuleSyntaxError):
        parse_tokens(rule)


def test_format_ast_simple():
    rule = fp_rule('body="nginx" || header="nginx"')
    assert rule.format_ast() == (
        " logicExp: ||\n"
        "  - left:\n"
        "      dslExp: body = 'nginx'\n"
        "  - right:\n"
        "      dslExp: header = 'nginx'\n"
    )


def test_format_ast_bracket_moves_left():
    rule = fp_rule('body="nginx" || (header="nginx" && header="Server: nginx")')
    lines = rule.format_ast().splitlines()
    assert lines[0] == " logicExp: ||"
    assert lines[2] == "   bracketExp:"
    assert lines[3] == "     logicExp: &&"
    assert lines[-1] == "      dslExp: body = 'nginx'"


@pytest.mark.parametrize(
    "text",
    [
        'body="nginx" || header="nginx"',
        'body="nginx" || header="nginx" && header="Server: nginx"',
        'body="nginx" && header="nginx" || header="Server: nginx"',
        '(body="nginx" || header="nginx") && header="Server: nginx"',
        'body="nginx" || (header="nginx" && header="Server: nginx")',
    ],
)
def test_transform_many(text):
    assert "logicExp" in fp_rule(text).format_ast()


def test_format_ast_regex():
    assert fp_rule('body~="ab+"').format_ast() == "    dslExp: body ~= regex('ab+')\n"


def test_print_ast(capsys):
    rule = fp_rule('(body="a")')
    rule.print_ast()
    assert capsys.readouterr().out == " bracketExp:\n      dslExp: body = 'a'\n"


@pytest.mark.parametrize(
    "text, config, expected",
    [
        ('header="nginx" || body="nginx"', MatchConfig(header="nginx123"), True),
        ('header="nginx" || body="nginx"', MatchConfig(body="nginxabc"), True),
        ('body="nginx" || header="nginx" && icon="123"',
         MatchConfig(body="nginxabc", header="server:none", icon=123), True),
        ('body="nginx" || header="nginx" && icon="123"',
         MatchConfig(body="abc", header="nginx", icon=123), True),
        ('body="nginx" || header="nginx" && icon="123"',
         MatchConfig(body="nginx", header="nginx", icon=456), False),
        ('body="nginx" && (icon=="123" || header="nginx")',
         MatchConfig(body="nginx", header="server:none", icon=123), True),
        ('body="nginx" && (icon=="123" || header="nginx")',
         MatchConfig(body="nginxabc", header="server:none", icon=456), False),
        ('body="nginx" || (icon=="123" && header="nginx")',
         MatchConfig(body="none", header="nginx", icon=123), True),
    ],
)
def test_eval(text, config, expected):
    assert fp_rule(text).eval(config) is expected


def test_eval_is_case_insensitive_and_not_equal():
    assert fp_rule('header="NGINX"').eval(MatchConfig(header="server: nginx")) is True
    assert fp_rule('body!="apache"').eval(MatchConfig(body="nginx")) is True
    assert fp_rule('body=="nginx"').eval(MatchConfig(body="nginx!")) is False


@pytest.mark.parametrize(
    "text",
    ['body="a" body="b"', 'body="a")', '(body="a"', 'body "a"', 'body = body', '&& body="a"', ""],
)
def test_parse_errors(text):
    with pytest.raises(RuleSyntaxError):
        transform_exp(parse_tokens(text))


def test_invalid_regex_is_syntax_error():
    with pytest.raises(RuleSyntaxError):
        transform_exp(parse_tokens('body~="(unclosed"'))


def test_advisory_range():
    rule = adv_rule('version > "1.2.3" && version < "2.3.dev"')
    assert rule.advisory_eval(AdvisoryConfig(version="1.3")) is True
    assert rule.advisory_eval(AdvisoryConfig(version="2.3.0")) is False


def test_advisory_latest():
    rule = adv_rule('version > "0" && version < "latest"')
    assert rule.advisory_eval(AdvisoryConfig(version="1.3")) is True


def test_advisory_unparseable_version_is_zero():
    rule = adv_rule('version < "1.0"')
    assert rule.advisory_eval(AdvisoryConfig(version="x.y")) is True


def test_advisory_equality_and_bounds():
    assert adv_rule('version == "1.0"').advisory_eval(AdvisoryConfig(version="v1.0.0")) is True
    assert adv_rule('version = "1.0"').advisory_eval(AdvisoryConfig(version="1.0.1")) is False
    assert adv_rule('version != "1.0"').advisory_eval(AdvisoryConfig(version="1.0.1")) is True
    assert adv_rule('version >= "1.0"').advisory_eval(AdvisoryConfig(version="1.0")) is True
    assert adv_rule('version <= "1.0"').advisory_eval(AdvisoryConfig(version="1.1")) is False


def test_advisory_is_internal():
    rule = adv_rule('is_internal="true"')
    assert rule.advisory_eval(AdvisoryConfig(is_internal=True)) is True
    assert rule.advisory_eval(AdvisoryConfig(is_internal=False)) is False


def test_wrong_evaluator_raises():
    with pytest.raises(ValueError):
        adv_rule('version > "1"').eval(MatchConfig())
    with pytest.raises(ValueError):
        fp_rule('body="a"').advisory_eval(AdvisoryConfig(version="1"))
    with pytest.raises(ValueError):
        fp_rule('body > "1"').eval(MatchConfig(body="1"))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("v1.2.3", "1.2.3"),
        ("latest", "999"),
        ("2.3.dev", "2.3.0"),
        ("1.0rc1", "1.01"),
        ("abc", "0"),
        ("", "0"),
        ("1.2", "1.2"),
    ],
)
def test_normalize_version(raw, expected):
    assert normalize_version(raw) == expected


def test_version_ordering():
    assert Version.parse("2.13") < Version.parse("2.13.1")
    assert Version.parse("1.0") == Version.parse("1.0.0")
    assert hash(Version.parse("1.0")) == hash(Version.parse("1.0.0"))
    assert Version.parse("1.0.0-beta") < Version.parse("1.0.0")
    assert Version.parse("1.0.0-alpha") < Version.parse("1.0.0-beta")
    assert Version.parse("1.0.0-1") < Version.parse("1.0.0-alpha")
    assert Version.parse("10.0") > Version.parse("9.9.9")


def test_version_parse_fields():
    version = Version.parse("v1.2-rc.1+build")
    assert version.segments == (1, 2, 0)
    assert version.prerelease == "rc.1"
    assert version.metadata == "build"


def test_version_parse_rejects_garbage():
    with pytest.raises(ValueError):
        Version.parse("abc")