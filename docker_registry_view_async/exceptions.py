#!/usr/bin/env python

"""Custom exceptions for the registry client."""

import asyncio
import json

from typing import Optional

from aiohttp import ClientError, ClientResponse


class RegistryError(Exception):
    """Base exception for all registry-related errors."""


class RegistryAuthError(RegistryError):
    """Raised when a bearer token cannot be retrieved from the authorization service."""


class ManifestError(RegistryError):
    """Raised when a manifest, manifest list or image configuration cannot be parsed."""


class RegistryResponseError(RegistryError):
    """
    Raised for any registry response with a status >= 400.

    The client response is retained so that callers can inspect the body and headers.
    """

    def __init__(
        self,
        status: int,
        *,
        client_response: ClientResponse = None,
        code: str = None,
        message: str = None,
        reason: str = None,
    ):
        self.client_response = client_response
        self.code = code
        self.message = message
        self.reason = reason
        self.status = status
        super().__init__(str(self))

    def __str__(self):
        if self.code:
            if self.message:
                return f"{self.code}: {self.message}"
            return self.code
        if self.reason:
            return f"status {self.status} {self.reason}"
        return f"status {self.status}"

    @staticmethod
    def parse_errors(body: bytes) -> Optional[dict]:
        """
        Parses the first entry of a registry error body: {"errors":[{"code":...,"message":...}]}.

        Args:
            body: The raw response body.

        Returns:
            The first error entry, or None if the body is not a registry error body.
        """
        if not body or not body.lstrip().startswith(b"{"):
            return None
        try:
            payload = json.loads(body)
        except ValueError:
            return None
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if not errors or not isinstance(errors[0], dict):
            return None
        return errors[0]

    @staticmethod
    def from_response(
        client_response: ClientResponse, body: bytes = None
    ) -> "RegistryResponseError":
        """
        Initializes a RegistryResponseError from a given client response.

        Args:
            client_response: The client response with a status >= 400.
            body: The (already read) response body.

        Returns:
            The newly initialized error.
        """
        error = RegistryResponseError.parse_errors(body) or {}
        return RegistryResponseError(
            client_response.status,
            client_response=client_response,
            code=error.get("code"),
            message=error.get("message"),
            reason=client_response.reason,
        )


# Errors that are recovered locally by the orchestrators: logged, and the unit of work skipped.
RECOVERABLE_ERRORS = (RegistryError, ClientError, asyncio.TimeoutError)
