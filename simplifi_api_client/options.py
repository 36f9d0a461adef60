"""Per-request options and URL construction."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import quote

from .config import ClientConfig
from .exceptions import SimplifiPaginationError, SimplifiRequestError

# Each occurrence is replaced by the next positional URL argument.
URL_PLACEHOLDER = "?"

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True)
class RequestOptions:
    """Options for a single API request.

    ``url`` is relative to ``url_base + url_version``; ``url_absolute`` is
    relative to ``url_base`` only.  ``data`` is sent as query parameters
    for GET and as the request body otherwise.  Instances are immutable;
    use :meth:`with_page` or :meth:`without_retry` to derive new ones.
    """

    method: str = "GET"
    url: Optional[str] = None
    url_absolute: Optional[str] = None
    url_args: Tuple[Any, ...] = ()
    data: Union[Dict[str, Any], str, None] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    with_access_token: bool = True
    response_type: Optional[str] = "json"
    retry_on_auth_exception: bool = True
    form: bool = False

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "RequestOptions":
        """Build options from a mapping, accepting ``with-access-token`` style keys."""
        normalised = {key.replace("-", "_"): value for key, value in values.items()}
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(normalised) - known)
        if unknown:
            raise SimplifiRequestError("Unknown request option(s): %s" % ", ".join(unknown))
        if "url_args" in normalised:
            normalised["url_args"] = tuple(normalised["url_args"])
        return cls(**normalised)

    def with_page(self, page: int) -> "RequestOptions":
        if isinstance(self.data, str):
            raise SimplifiPaginationError("Cannot add a page number to a raw string request body")
        data = dict(self.data) if isinstance(self.data, dict) else {}
        data["page"] = page
        return dataclasses.replace(self, data=data)

    def without_retry(self) -> "RequestOptions":
        return dataclasses.replace(self, retry_on_auth_exception=False)

    def has_access_token(self) -> bool:
        """True if the caller already put an ``access_token`` into ``data``."""
        return isinstance(self.data, dict) and "access_token" in self.data


def fill_template(template: str, args: Tuple[Any, ...]) -> str:
    """Substitute ``args`` into the ``?`` placeholders of ``template``.

    >>> fill_template("invoices/?/lines/?", (12, 3))
    'invoices/12/lines/3'
    """
    expected = template.count(URL_PLACEHOLDER)
    if expected != len(args):
        raise SimplifiRequestError(
            "URL template %r has %d placeholder(s) but %d argument(s) were given"
            % (template, expected, len(args))
        )
    if not args:
        return template
    pieces = template.split(URL_PLACEHOLDER)
    out = [pieces[0]]
    for arg, piece in zip(args, pieces[1:]):
        out.append(quote(str(arg), safe=""))
        out.append(piece)
    return "".join(out)


def build_url(config: ClientConfig, options: RequestOptions) -> str:
    """Resolve the full request URL for ``options``."""
    if options.url_absolute is not None:
        return config.url_base + fill_template(options.url_absolute, options.url_args)
    if options.url is not None:
        return config.url_base + config.url_version + fill_template(options.url, options.url_args)
    raise SimplifiRequestError("Url not specified for request.")
