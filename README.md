# infraguard

A library for recognising AI infrastructure components exposed over HTTP and
for checking the versions found against advisory rules.

It provides:

- a small rule language for fingerprints, such as
  `body="nginx" && (icon=="123" || header="Server: nginx")`, with a tokenizer
  (`infraguard.tokens.parse_tokens`), a parser (`infraguard.syntax.transform_exp`)
  and an evaluator (`Rule.eval`);
- version rules for advisories, such as `version >= "1.0.0" && version < "2.3.dev"`,
  read with `parse_advisor_tokens` and checked with `Rule.advisory_eval`;
- YAML fingerprint templates, loaded with `infraguard.fingerprint.parse_fingerprint`;
- the favicon hash used by common search engines (`infraguard.utils.favicon_hash`)
  and favicon discovery (`infraguard.favicon`);
- expansion of IPv4 CIDR ranges into scan targets (`infraguard.ipnet`);
- a fingerprint runner that sends the template requests, runs a built-in MLflow
  probe and removes duplicate results (`infraguard.preload`);
- result records and a security score over scan results (`infraguard.results`).

## Requirements

Python 3.10 or later, with `pyyaml` and `requests`.

## Fingerprint rules

A fingerprint rule compares a part of an HTTP response with quoted text:

| Part     | Meaning                              |
|----------|--------------------------------------|
| `body`   | the response body                    |
| `header` | the raw response headers             |
| `icon`   | the favicon hash, as decimal text    |

| Operator | Meaning                                      |
|----------|----------------------------------------------|
| `=`      | the part contains the text                   |
| `==`     | the part equals the text                     |
| `!=`     | the part does not contain the text           |
| `~=`     | the regular expression is found in the part  |

The response part is lower-cased before it is compared; for `=`, `==` and `!=`
the text is lower-cased too, while a `~=` pattern is used as written.
Comparisons are combined with `&&`, `||` and parentheses. Inside quotes, a
backslash escapes the next character.

```python
from infraguard.tokens import parse_tokens, check_balance
from infraguard.syntax import MatchConfig, transform_exp

tokens = parse_tokens('body="nginx" && (icon=="123" || header="nginx")')
check_balance(tokens)
rule = transform_exp(tokens)

config = MatchConfig(body="nginx", header="server:none", icon=123)
print(rule.eval(config))   # True
print(rule.format_ast())   # rule.print_ast() writes the same to stdout
```

`compile_rule` in `infraguard.fingerprint` does the three steps in one call.
A malformed rule, an unbalanced bracket or an invalid regular expression
raises `RuleSyntaxError` (a `ValueError`).

## Advisory rules

Advisory rules use `version` with `=`, `==`, `!=`, `>`, `>=`, `<` and `<=`
(`=` means equality here), and `is_internal`, which takes the value of
`AdvisoryConfig.is_internal`. Versions pass through `normalize_version` before
they are compared: a leading `v` is removed, `latest` becomes `999`, and
letters are dropped (`2.3.dev` becomes `2.3.0`). A version that still cannot
be parsed counts as `0.0.0`. Parsing and ordering are done by
`infraguard.syntax.Version`.

```python
from infraguard.tokens import parse_advisor_tokens
from infraguard.syntax import AdvisoryConfig, transform_exp

rule = transform_exp(parse_advisor_tokens('version > "0" && version < "latest"'))
print(rule.advisory_eval(AdvisoryConfig(version="1.3")))   # True
```

## Fingerprint templates

```python
from pathlib import Path
from infraguard.fingerprint import parse_fingerprint

fp = parse_fingerprint(Path("fingerprints/anythingllm.yaml").read_bytes())
print(fp.info.name)
```

A template has an `info` block (`name`, `author`, `example`, `desc`,
`severity`, `metadata`), a list of `http` requests (`method`, `path`, `data`,
`matchers`) whose matchers are fingerprint rules, and an optional list of
`version` requests whose `extractor` (`part`, `group`, `regex`) pulls the
version out of the body, or out of the headers when `part` is `header`.

## Running fingerprints

```python
from infraguard.preload import HttpClient, FingerprintRunner

client = HttpClient(timeout=10)
runner = FingerprintRunner(client, [fp])
for result in runner.run_fp_reqs("http://127.0.0.1:5000", 10, 0):
    print(result.name, result.version, result.type)
```

`HttpClient` wraps a `requests` session; by default it does not follow
redirects, does not verify certificates and retries a failed request once.
`run_fp_reqs` fetches the index page once, runs every template and the
built-in `Mlflow` probe on a thread pool of the given size, and passes the
findings through `deduplicate`, which keeps one result per name and prefers a
later one that brings a different, non-empty version. `eval_fp_version` reads
a template's version; the first version request that succeeds decides it.

## Favicons, targets and local ports

```python
from infraguard.utils import favicon_hash
from infraguard.ipnet import ip_addresses

print(favicon_hash(b"\x00\x01icon-bytes"))
print(ip_addresses("192.168.1.0/30"))
# ['192.168.1.0', '192.168.1.1', '192.168.1.2', '192.168.1.3']
```

- `find_icon_urls(domain, body)` lists the `<link rel="...icon...">` targets of
  a page followed by `/favicon.ico`; `get_favicon_bytes(fetch, domain, body)`
  returns the first one that `fetch` downloads, or `None`.
- `targets(target)` yields the hosts one target stands for (nothing if it
  holds a space or `*`); `expand_targets(target_list)` expands every CIDR
  range in a list and drops duplicates. Only IPv4 ranges can be expanded.
- `get_local_open_ports()` runs `netstat -an` on Windows or `lsof -i -P -n` on
  Linux and macOS and returns the listening `PortInfo` entries;
  `parse_netstat_output` and `parse_lsof_output` parse such output directly.
- `infraguard.utils` also has `compare_versions`, `trim_protocol`,
  `get_middle_text`, `scan_dir`, `duration_to_string` and `murmur3_32`.

## Results and security score

`HttpResult` holds what scanning one URL produced; `to_json()` renders it with
the keys `url`, `title`, `content-length`, `status-code`, `response-time`,
`fingerprints` and `advisories`. `format_fingerprints` renders fingerprints as
`name[:type][:version]`.

`calc_sec_score` takes a list of `HttpResult` and returns a
`CallbackReportInfo` with the counts of high (HIGH and CRITICAL), medium and
low findings and a score from 0 to 100. With no results the score is 0; with
results but no advisories it is 100.

## What it does not do

This is a library only. It has no command-line program, no web interface, and
no scan driver that walks a target list, writes report files or prints summary
tables. It does not ship fingerprint templates or an advisory database and has
no loader for one: `Advisory` and `VulnInfo` records are filled in by the
caller.