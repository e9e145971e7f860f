"""Running fingerprint templates and built-in probes against a web service."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Protocol, Sequence

import requests

from infraguard.favicon import _join_url
from infraguard.fingerprint import FingerPrint, evaluate
from infraguard.syntax import MatchConfig
from infraguard.utils import get_middle_text

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/87.0.4280.88 Safari/537.36 Edg/87.0.664.66"
)


@dataclass(frozen=True)
class FpResult:
    """A fingerprint found on a target."""

    name: str
    version: str = ""
    type: str = ""


@dataclass
class HttpResponse:
    """The parts of an HTTP response the scanner looks at."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    data: bytes = b""

    @property
    def data_str(self) -> str:
        """The body decoded as UTF-8, with invalid bytes replaced."""
        return self.data.decode("utf-8", errors="replace")

    def header(self, name: str) -> str:
        """Return a header's value, looked up case-insensitively; empty if absent."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return ""

    def header_raw(self) -> str:
        """Return all headers as 'Name: value' lines."""
        return "".join(f"{key}: {value}\r\n" for key, value in self.headers.items())


class HttpClient:
    """A small HTTP client that does not follow redirects by default.

    Network failures surface as OSError (requests' exceptions derive from it).
    """

    def __init__(
        self,
        timeout: float = 10.0,
        proxy: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        follow_redirects: bool = False,
        verify: bool = False,
        retries: int = 1,
    ) -> None:
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.verify = verify
        self.retries = max(0, retries)
        self._headers = {"User-Agent": user_agent, **(headers or {})}
        self._session = requests.Session()
        if proxy:
            self._session.proxies = {"http": proxy, "https": proxy}

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None) -> HttpResponse:
        """Send a GET request."""
        return self._request("GET", url, None, headers)

    def post(
        self, url: str, data: str, headers: Optional[Mapping[str, str]] = None
    ) -> HttpResponse:
        """Send a POST request with data as the body."""
        return self._request("POST", url, data, headers)

    def _request(
        self,
        method: str,
        url: str,
        data: Optional[str],
        headers: Optional[Mapping[str, str]],
    ) -> HttpResponse:
        merged = {**self._headers, **(headers or {})}
        error: Optional[requests.RequestException] = None
        for _ in range(self.retries + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    data=data.encode("utf-8") if data is not None else None,
                    headers=merged,
                    timeout=self.timeout,
                    allow_redirects=self.follow_redirects,
                    verify=self.verify,
                )
            except requests.RequestException as exc:
                error = exc
                continue
            return HttpResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response.content,
            )
        assert error is not None
        raise error


class _Probe(Protocol):
    def match(self, client: HttpClient, uri: str) -> bool: ...

    def get_version(self, client: HttpClient, uri: str) -> str: ...

    def name(self) -> str: ...


_MLFLOW_FLAG = (
    '{INTERNAL_ERROR:"INTERNAL_ERROR",INVALID_PARAMETER_VALUE:"INVALID_PARAMETER_VALUE",'
    'RESOURCE_DOES_NOT_EXIST:"RESOURCE_DOES_NOT_EXIST",PERMISSION_DENIED:"PERMISSION_DENIED",'
    'RESOURCE_CONFLICT:"RESOURCE_CONFLICT"}'
)
_SEMVER_RE = re.compile(r"\d+\.\d+\.\d+")


class Mlflow:
    """Detects MLflow servers and reads their version from the bundled script."""

    _headers = {"User-Agent": DEFAULT_USER_AGENT}

    def match(self, client: HttpClient, uri: str) -> bool:
        """Tell whether the index page carries the MLflow title."""
        try:
            response = client.get(uri + "/", self._headers)
        except OSError:
            return False
        return response.status_code == 200 and "<title>MLflow</title>" in response.data_str

    def get_version(self, client: HttpClient, uri: str) -> str:
        """Return the MLflow version, or raise ValueError if it cannot be found."""
        response = client.get(uri + "/", self._headers)
        if response.status_code != 200:
            raise ValueError("request code != 200")
        js_path = get_middle_text('script defer="defer" src="', '">', response.data_str)
        if not js_path:
            raise ValueError("not found js path")
        script = client.get(_join_url(uri, js_path), self._headers).data_str
        index = script.find(_MLFLOW_FLAG)
        if index == -1:
            raise ValueError("not found flag")
        match = _SEMVER_RE.search(script, index + len(_MLFLOW_FLAG))
        return match.group(0) if match else ""

    def name(self) -> str:
        """The fingerprint name this probe reports."""
        return "mlflow"


def collected_fp_reqs() -> list[_Probe]:
    """Return the built-in probes that are run besides the templates."""
    return [Mlflow()]


def deduplicate(results: Iterable[FpResult]) -> list[FpResult]:
    """Keep one result per name, preferring a later one that brings a new version."""
    kept: list[FpResult] = []
    versions: dict[str, str] = {}
    for result in results:
        if result.name not in versions:
            versions[result.name] = result.version
            kept.append(result)
        elif result.version and versions[result.name] != result.version:
            versions[result.name] = result.version
            position = next(i for i, item in enumerate(kept) if item.name == result.name)
            del kept[position]
            kept.append(result)
    return kept


def eval_fp_version(uri: str, client: HttpClient, fp: FingerPrint) -> str:
    """Extract a version using the template's version rules; empty if none applies.

    The first version rule whose request succeeds decides the result.
    """
    for rule in fp.version:
        try:
            response = client.get(uri + rule.path)
        except OSError as exc:
            logger.error("request failed: %s", exc)
            continue
        extractor = rule.extractor
        if not extractor.regex:
            return ""
        try:
            pattern = re.compile("(?i)" + extractor.regex)
        except re.error as exc:
            logger.error("compile regex error %s: %s", extractor.regex, exc)
            return ""
        try:
            group = int(extractor.group)
        except ValueError:
            logger.error("parse part error %s", extractor.part)
            return ""
        subject = response.header_raw() if extractor.part == "header" else response.data_str
        match = pattern.search(subject)
        if match is None:
            return ""
        try:
            return match.group(group) or ""
        except IndexError:
            logger.error("regex %s has no group %d", extractor.regex, group)
            return ""
    return ""


class FingerprintRunner:
    """Runs fingerprint templates and built-in probes against targets."""

    def __init__(self, client: HttpClient, fps: Sequence[FingerPrint]) -> None:
        self._client = client
        self._fps = list(fps)

    def get_fps(self) -> list[FingerPrint]:
        """Return the loaded fingerprint templates."""
        return list(self._fps)

    def run_fp_reqs(self, uri: str, concurrent: int, favicon_hash: int) -> list[FpResult]:
        """Identify the components behind uri, using up to `concurrent` workers."""
        uri = uri.rstrip("/")
        try:
            index: Optional[HttpResponse] = self._client.get(uri + "/")
        except OSError:
            index = None

        with ThreadPoolExecutor(max_workers=max(1, concurrent)) as pool:
            futures = [
                pool.submit(self._match_template, uri, fp, index, favicon_hash)
                for fp in self._fps
            ]
            futures += [pool.submit(self._run_probe, uri, probe) for probe in collected_fp_reqs()]
            found = [result for future in futures for result in future.result()]
        return deduplicate(found)

    def _match_template(
        self,
        uri: str,
        fp: FingerPrint,
        index: Optional[HttpResponse],
        favicon_hash: int,
    ) -> list[FpResult]:
        found: list[FpResult] = []
        for rule in fp.http:
            if rule.path == "/" and rule.method == "GET":
                response = index
            else:
                try:
                    if rule.method == "POST":
                        response = self._client.post(uri + rule.path, rule.data)
                    else:
                        response = self._client.get(uri + rule.path)
                except OSError as exc:
                    logger.debug("request failed: %s", exc)
                    continue
            if response is None:
                continue
            config = MatchConfig(
                body=response.data_str, header=response.header_raw(), icon=favicon_hash
            )
            if any(evaluate(config, dsl) for dsl in rule.dsl):
                version = eval_fp_version(uri, self._client, fp)
                found.append(
                    FpResult(fp.info.name, version, fp.info.metadata.get("type", ""))
                )
        return found

    def _run_probe(self, uri: str, probe: _Probe) -> list[FpResult]:
        if not probe.match(self._client, uri):
            return []
        try:
            version = probe.get_version(self._client, uri)
        except (OSError, ValueError):
            version = ""
        return [FpResult(probe.name(), version)]