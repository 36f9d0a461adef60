"""Tests for ApiResponse."""

import json
import logging
import time

import pytest

from simplifi_api_client import (
    NO_MORE_PAGES,
    ApiResponse,
    RequestOptions,
    SimplifiAPIError,
    SimplifiClient,
    SimplifiPaginationError,
)
from simplifi_api_client.response import MAX_ERROR_TITLE_LENGTH, redact
from simplifi_api_client.token_store import CallbackTokenStore, Token

from .conftest import MemoryCache, make_http_response, token_response


def build(config, body=None, *, status=200, text=None, transport_error=None, options=None, client=None):
    if text is None:
        text = "" if body is None else json.dumps(body)
    return ApiResponse(
        client,
        config,
        options or RequestOptions(url="sales"),
        http_status=None if transport_error else status,
        raw_body=text,
        url="https://api.test/api/v1/sales",
        transport_error=transport_error,
        reason="OK" if status < 400 else "Bad Request",
    )


def page(number, total, items):
    return {"data": items, "paginator": {"current_page": number, "total_pages": total, "total_count": 9}}


@pytest.fixture
def paging_client(config):
    client = SimplifiClient(config, token_store=CallbackTokenStore(MemoryCache(), "key"))
    client.tokens.store.write(Token(value="cached-token", expires_at=int(time.time()) + 3600))
    return client


class TestSuccess:
    def test_derived_from_status(self, config):
        assert build(config, {}).success
        assert not build(config, {}, status=404).success

    def test_empty_body_is_success(self, config):
        response = build(config, text="", status=204)

        assert response.success
        assert response.body() is None

    def test_forced_success_wins(self, config):
        response = build(config, {"errors": [{"title": "Invalid total"}]})

        response.set_success(False)
        assert not response.is_success()

        response.set_success(None)
        assert response.is_success()

    def test_response_is_truthy_even_when_empty(self, config):
        assert bool(build(config, {"data": []}))


class TestErrors:
    def test_errors_array_is_returned_verbatim(self, config):
        response = build(config, {"errors": [{"title": "Bad scope"}]}, status=400)

        assert response.errors() == [{"title": "Bad scope"}]
        assert response.errors_to_string() == "Bad scope"

    def test_error_string(self, config):
        assert build(config, {"error": "Nope"}, status=400).errors() == [{"title": "Nope"}]

    def test_error_object(self, config):
        response = build(config, {"error": {"title": "Denied", "message": "No access"}}, status=403)

        assert response.errors() == [{"title": "Denied", "message": "No access"}]

    def test_transport_failure_synthesises_single_error(self, config):
        response = build(config, transport_error="Timeout: " + "x" * 500)

        errors = response.errors()
        assert len(errors) == 1
        assert errors[0]["title"]
        assert len(errors[0]["title"]) <= MAX_ERROR_TITLE_LENGTH

    def test_no_errors_on_success(self, config):
        assert build(config, {"data": []}).errors() == []

    def test_unknown_error_message(self, config):
        response = build(config, {"data": []})
        response.set_success(False)

        assert response.simple_errors() == ["200: Request failed"]

    def test_raise_for_errors(self, config):
        sink = []
        response = build(config.merged({"error_log_function": sink.append}), {"errors": [{"title": "Bad"}]}, status=400)

        with pytest.raises(SimplifiAPIError, match="Bad") as exc_info:
            response.raise_for_errors("Could not save")

        assert exc_info.value.response is response
        assert sink and "Could not save" in sink[0]

    def test_authentication_exception_body(self, config):
        response = build(config, {"type": "AuthenticationException", "message": "Token expired"})

        assert not response.success
        assert response.errors() == [{"title": "AuthenticationException", "message": "Token expired"}]

    def test_raise_for_errors_noop_on_success(self, config):
        build(config, {}).raise_for_errors()


class TestPropertyAccess:
    def test_nested_lookup(self, config):
        response = build(config, page(2, 3, [{"id": 5}]))

        assert response.get("paginator.current_page") == 2
        assert response.get(["data", 0, "id"]) == 5
        assert response.get("data.0.id") == 5

    def test_missing_path_warns_and_returns_default(self, config, caplog):
        response = build(config, {"data": {"id": 1}})

        with caplog.at_level(logging.WARNING, logger="simplifi_api_client.response"):
            assert response.get("data.customer.name") is None
            assert response.get("paginator", default=0) == 0

        assert "data.customer.name" in caplog.text

    def test_lookup_on_non_json_body(self, config):
        response = build(config, text="plain", options=RequestOptions(url="x", response_type=None))

        assert response.get("data") is None

    def test_iteration_and_len(self, config):
        response = build(config, {"data": [1, 2, 3]})

        assert list(response) == [1, 2, 3]
        assert len(response) == 3

    def test_len_of_non_list_data(self, config):
        with pytest.raises(TypeError):
            len(build(config, {"data": {"id": 1}}))


class TestPagination:
    def test_no_paginator_means_no_more_pages(self, config):
        assert build(config, {"data": []}).next_page() is NO_MORE_PAGES
        assert not NO_MORE_PAGES

    def test_last_page_has_no_next(self, config):
        assert build(config, page(3, 3, [])).next_page() is NO_MORE_PAGES

    def test_next_page_requests_following_page(self, paging_client, mock_request):
        mock_request.side_effect = [
            make_http_response(200, page(1, 2, ["a"])),
            make_http_response(200, page(2, 2, ["b"])),
        ]

        first = paging_client.get("sales", data={"status": "open"})
        second = first.next_page()

        assert second.current_page == 2
        assert mock_request.call_args[1]["params"] == {"status": "open", "page": 2}
        assert first.request_options.data == {"status": "open"}

    def test_all_pages_collects_items_in_order(self, paging_client, mock_request):
        mock_request.side_effect = [
            make_http_response(200, page(1, 3, ["a", "b"])),
            make_http_response(200, page(2, 3, ["c"])),
            make_http_response(200, page(3, 3, ["d", "e"])),
        ]

        items = paging_client.get("sales").all_pages()

        assert items == ["a", "b", "c", "d", "e"]
        assert mock_request.call_count == 3

    def test_all_pages_single_page(self, config):
        assert build(config, {"data": [1, 2]}).all_pages() == [1, 2]

    def test_all_pages_on_failed_response(self, config):
        with pytest.raises(SimplifiPaginationError, match="Bad scope"):
            build(config, {"errors": [{"title": "Bad scope"}]}, status=400).all_pages()

    def test_all_pages_intermediate_failure(self, paging_client, mock_request):
        mock_request.side_effect = [
            make_http_response(200, page(1, 3, ["a"])),
            make_http_response(500, {"error": "Server exploded"}, reason="Server Error"),
        ]

        with pytest.raises(SimplifiPaginationError, match="Server exploded"):
            paging_client.get("sales").all_pages()

    def test_non_increasing_page_is_fatal(self, paging_client, mock_request):
        mock_request.side_effect = [
            make_http_response(200, page(1, 3, ["a"])),
            make_http_response(200, page(1, 3, ["a"])),
        ]

        with pytest.raises(SimplifiPaginationError, match="Inconsistent pagination"):
            paging_client.get("sales").all_pages()
        assert mock_request.call_count == 2

    def test_next_page_after_token_retry_retries_again(self, paging_client, mock_request):
        rejected = {"type": "AuthenticationException", "message": "Token expired"}
        mock_request.side_effect = [
            make_http_response(401, rejected, reason="Unauthorized"),
            token_response("second-token"),
            make_http_response(200, page(1, 2, ["a"])),
            make_http_response(401, rejected, reason="Unauthorized"),
            token_response("third-token"),
            make_http_response(200, page(2, 2, ["b"])),
        ]

        first = paging_client.get("sales")
        second = first.next_page()

        assert first.request_options.retry_on_auth_exception is True
        assert second.success
        assert second.get("data") == ["b"]
        assert mock_request.call_count == 6
        assert mock_request.call_args[1]["headers"]["Authorization"] == "Bearer third-token"

    def test_string_body_cannot_be_paged(self, mock_request):
        with pytest.raises(SimplifiPaginationError, match="raw string"):
            RequestOptions(url="sales", method="POST", data="<xml/>").with_page(2)
        assert mock_request.call_count == 2


class TestSerialise:
    def test_secrets_are_redacted(self, config):
        options = RequestOptions(
            url="oauth/access_token",
            method="POST",
            data={"client_id": "id", "client_secret": "s3cret", "password": "pw-value-9"},
            headers={"Authorization": "Bearer abc"},
        )
        response = build(config, {"access_token": "tok-value-7", "refresh_token": "r", "expires_in": 60}, options=options)

        dumped = response.to_json()

        for secret in ("s3cret", "pw-value-9", "tok-value-7", "Bearer abc"):
            assert secret not in dumped
        serialised = response.serialise()
        assert serialised["request_options"]["data"]["client_id"] == "id"
        assert serialised["response"]["expires_in"] == 60
        assert serialised["method"] == "POST"

    def test_redact_nested(self):
        assert redact({"a": [{"apiToken": "x", "b": 1}]}) == {"a": [{"apiToken": "[REDACTED]", "b": 1}]}
