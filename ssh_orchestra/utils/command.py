"""Fluent builder for `kubectl exec <pod> -- curl ...` command lines.

Example:
    cmd = (
        KubectlCurlBuilder()
        .pod("api-7f9c")
        .token(token)
        .content("json")
        .payload({"replicas": 3})
        .api("http://localhost:8080/api/v1/scale")
        .create()
    )
    output = await orchestrator.exec_remote(cmd)
"""

import json
from typing import Any, Literal

from ssh_orchestra.utils.shell import double_quote, quote_arg

CONTENT_TYPES = {
    "json": "application/json",
    "form": "multipart/form-data",
    "patch": "application/json-patch+json",
}

CURL_FLAGS = "-Lgskv"


class KubectlCurlBuilder:
    """Build a curl invocation executed inside a Kubernetes pod."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def reset(self) -> "KubectlCurlBuilder":
        """Clear all parts collected so far."""
        self._parts = []
        return self

    def pod(self, pod_name: str) -> "KubectlCurlBuilder":
        """Start a new command targeting `pod_name`. Resets the builder."""
        self.reset()
        self._parts.extend(["kubectl", "exec", quote_arg(pod_name), "--", "curl", CURL_FLAGS])
        return self

    def patch(self) -> "KubectlCurlBuilder":
        self._parts.append("-X PATCH")
        return self

    def token(self, token: str) -> "KubectlCurlBuilder":
        """Add a bearer Authorization header."""
        return self.header(f"Authorization: Bearer {token}")

    def header(self, header: str) -> "KubectlCurlBuilder":
        self._parts.append(f"-H {double_quote(header)}")
        return self

    def content(self, kind: Literal["json", "form", "patch"] = "json") -> "KubectlCurlBuilder":
        """Add a Content-Type header; unknown kinds fall back to JSON."""
        return self.header(f"Content-Type: {CONTENT_TYPES.get(kind, CONTENT_TYPES['json'])}")

    def payload(self, payload: Any) -> "KubectlCurlBuilder":
        """Add a JSON request body, single-quoted for the shell."""
        body = json.dumps(payload, separators=(",", ":"))
        self._parts.append(f"-d {quote_arg(body)}")
        return self

    def api(self, url: str) -> "KubectlCurlBuilder":
        self._parts.append(double_quote(url))
        return self

    def form_meta(self, meta: str) -> "KubectlCurlBuilder":
        self._parts.append(f"-F {double_quote(f'{meta};type=application/json')}")
        return self

    def form_file(self, file: str) -> "KubectlCurlBuilder":
        self._parts.append(f"-F {double_quote(f'{file};type=application/pdf')}")
        return self

    def create(self) -> str:
        """Join all parts into the final command string."""
        return " ".join(self._parts)
