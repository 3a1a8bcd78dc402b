"""
Docker Engine client for image pull, tag and push.

This module wraps the docker SDK's low-level APIClient. The engine address is
taken from DOCKER_HOST / DOCKER_TLS_VERIFY / DOCKER_CERT_PATH like the docker
CLI, and the API version is negotiated with the daemon.

Pull and push progress is echoed verbatim to the progress output and drained
to completion before the call returns. The engine reports most failures
(missing image, rejected credentials) inside that stream, so a stream that
carries an error message, ends mid-message, or breaks off is a failure.
"""

import re
import sys
import threading
from typing import Callable, Dict, Iterable, Iterator, List, Optional, TextIO, Tuple, Union

import docker
import requests
from docker.errors import DockerException, StreamParseError
from docker.utils import kwargs_from_env, parse_repository_tag
from docker.utils.json_stream import json_stream

from image_migrator.error_utils import create_pull_error, create_push_error, create_tag_error
from image_migrator.logging_utils import get_logger

AUTH_HEADER = "X-Registry-Auth"
DEFAULT_TAG = "latest"

# Docker reference grammar (distribution/reference) for tag targets, without IPv6 hosts
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?"
_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_NAME = rf"(?:{_DOMAIN}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
_TAG = r"[\w][\w.-]{0,127}"
TAG_TARGET_PATTERN = re.compile(rf"^{_NAME}(?::{_TAG})?$")

_TRANSPORT_ERRORS = (DockerException, StreamParseError, requests.exceptions.RequestException, ValueError)


class EngineStreamError(Exception):
    """Raised when the engine reports an error inside a progress stream."""

    def __init__(self, message: str, detail: Optional[Dict] = None):
        self.detail = detail or {}
        super().__init__(message)


def split_image_reference(image: str) -> Tuple[str, str]:
    """Split an image reference into (repository, tag-or-digest).

    A reference without tag or digest resolves to the 'latest' tag.
    """
    repository, tag = parse_repository_tag(image)
    return repository, tag or DEFAULT_TAG


def default_client_factory(base_url: Optional[str] = None, timeout: Optional[int] = None) -> Callable[[], docker.APIClient]:
    """Return a factory creating APIClients configured from the environment."""

    def factory() -> docker.APIClient:
        kwargs = kwargs_from_env()
        if base_url:
            kwargs["base_url"] = base_url
        if timeout is not None:
            kwargs["timeout"] = timeout
        return docker.APIClient(version="auto", **kwargs)

    return factory


class DockerEngineClient:
    """Pull, tag and push images through a Docker daemon.

    One SDK client is created lazily per thread, so a single instance can be
    shared by parallel migration workers.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        progress_output: Optional[TextIO] = None,
        client_factory: Optional[Callable[[], docker.APIClient]] = None,
    ):
        """Initialize DockerEngineClient.

        Args:
            base_url: Engine address (defaults to DOCKER_HOST or the local socket)
            timeout: Socket timeout in seconds for engine requests
            progress_output: Where pull/push progress is echoed (defaults to stdout)
            client_factory: Callable returning a docker.APIClient, for tests or custom setups
        """
        self.logger = get_logger(self.__class__.__name__)
        self.base_url = base_url
        self.progress_output = progress_output or sys.stdout
        self._client_factory = client_factory or default_client_factory(base_url, timeout)
        self._local = threading.local()
        self._clients: List[docker.APIClient] = []
        self._clients_lock = threading.Lock()
        self._output_lock = threading.Lock()

    def _api(self) -> docker.APIClient:
        api = getattr(self._local, "api", None)
        if api is None:
            api = self._client_factory()
            self._local.api = api
            with self._clients_lock:
                self._clients.append(api)
        return api

    @staticmethod
    def _auth_headers(auth_token: Optional[str]) -> Dict[str, str]:
        if auth_token is None:
            return {}
        return {AUTH_HEADER: auth_token}

    def _echo(self, chunks: Iterable[Union[bytes, str]]) -> Iterator[Union[bytes, str]]:
        """Copy stream chunks to the progress output as they pass through.

        Bytes go to the output's binary buffer untouched when it has one.
        """
        binary = getattr(self.progress_output, "buffer", None)
        for chunk in chunks:
            with self._output_lock:
                if isinstance(chunk, bytes) and binary is not None:
                    self.progress_output.flush()
                    binary.write(chunk)
                    binary.flush()
                else:
                    text = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else chunk
                    self.progress_output.write(text)
                    self.progress_output.flush()
            yield chunk

    def _drain_progress(self, chunks: Iterable[Union[bytes, str]]) -> int:
        """Consume a progress stream to the end, raising on engine errors.

        Returns:
            Number of progress messages read
        """
        count = 0
        for message in json_stream(self._echo(chunks)):
            count += 1
            if isinstance(message, dict) and (message.get("error") or message.get("errorDetail")):
                detail = message.get("errorDetail") or {}
                raise EngineStreamError(message.get("error") or detail.get("message", "unknown error"), detail)
        return count

    def _stream_request(self, path: str, path_args: tuple, params: Dict[str, str], auth_token: Optional[str]) -> int:
        # Same request sequence as APIClient.pull/push, with the token passed through untouched
        api = self._api()
        response = api._post(
            api._url(path, *path_args),
            params=params,
            headers=self._auth_headers(auth_token),
            stream=True,
            timeout=None,
        )
        try:
            api._raise_for_status(response)
            return self._drain_progress(api._stream_helper(response, decode=False))
        finally:
            response.close()

    def pull(self, image: str, auth_token: Optional[str] = None) -> None:
        """Pull an image into the engine's local storage.

        Args:
            image: Image reference (repository[:tag|@digest])
            auth_token: Encoded registry auth token, None for anonymous access

        Raises:
            PullError: If the engine cannot complete the pull
        """
        if not image:
            raise create_pull_error(image, ValueError("invalid reference format: image reference is empty"))

        repository, tag = split_image_reference(image)
        self.logger.debug(
            f"Pulling {repository} (tag={tag}, auth={'yes' if auth_token is not None else 'anonymous'})"
        )
        try:
            messages = self._stream_request(
                "/images/create", (), {"fromImage": repository, "tag": tag}, auth_token
            )
        except (EngineStreamError,) + _TRANSPORT_ERRORS as e:
            raise create_pull_error(image, e) from e
        self.logger.debug(f"Pull of {image} finished after {messages} progress message(s)")

    def tag(self, source: str, destination: str) -> None:
        """Alias a locally stored image under a new reference.

        Args:
            source: Reference of an image already in local storage
            destination: New reference (repository[:tag]); tag defaults to 'latest'

        Raises:
            TagError: If the destination is malformed or the engine rejects the tag
        """
        if not destination or len(destination) > 255 or not TAG_TARGET_PATTERN.match(destination):
            raise create_tag_error(source, destination, ValueError(f"invalid reference format: {destination!r}"))

        repository, tag = split_image_reference(destination)
        self.logger.debug(f"Tagging {source} as {repository}:{tag}")
        try:
            tagged = self._api().tag(source, repository, tag=tag)
        except _TRANSPORT_ERRORS as e:
            raise create_tag_error(source, destination, e) from e
        if not tagged:
            raise create_tag_error(source, destination, RuntimeError("engine did not confirm the tag"))

    def push(self, image: str, auth_token: Optional[str] = None) -> None:
        """Push a locally tagged image to its registry.

        Args:
            image: Image reference (repository[:tag])
            auth_token: Encoded registry auth token, None for anonymous access

        Raises:
            PushError: If the engine cannot complete the push
        """
        if not image:
            raise create_push_error(image, ValueError("invalid reference format: image reference is empty"))

        repository, tag = split_image_reference(image)
        self.logger.debug(
            f"Pushing {repository} (tag={tag}, auth={'yes' if auth_token is not None else 'anonymous'})"
        )
        try:
            messages = self._stream_request("/images/{0}/push", (repository,), {"tag": tag}, auth_token)
        except (EngineStreamError,) + _TRANSPORT_ERRORS as e:
            raise create_push_error(image, e) from e
        self.logger.debug(f"Push of {image} finished after {messages} progress message(s)")

    def ping(self) -> bool:
        """Check the engine is reachable."""
        try:
            return bool(self._api().ping())
        except _TRANSPORT_ERRORS as e:
            self.logger.error(f"Docker engine is not reachable{' at ' + self.base_url if self.base_url else ''}: {e}")
            return False

    def close(self) -> None:
        """Close every SDK client created by this instance."""
        with self._clients_lock:
            clients, self._clients = self._clients, []
        for api in clients:
            api.close()
        self._local = threading.local()
