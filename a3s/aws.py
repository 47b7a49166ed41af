from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Mapping, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

from .errors import (
    AuthError,
    ConfigurationError,
    ParseError,
    TransportError,
    UnimplementedCapability,
)

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

CATEGORY_EC2 = "ec2"
CATEGORY_S3 = "s3"
CATEGORY_LAMBDA = "lambda"
CATEGORY_RDS = "rds"
CATEGORIES = (CATEGORY_EC2, CATEGORY_S3, CATEGORY_LAMBDA, CATEGORY_RDS)
SUPPORTED_CATEGORIES = frozenset({CATEGORY_EC2})

DEFAULT_REGION = "us-east-1"
LOCAL_ENDPOINT_CREDENTIALS = ("test", "test")

AUTH_ERROR_CODES = {
    "AuthFailure",
    "UnauthorizedOperation",
    "AccessDenied",
    "AccessDeniedException",
    "ExpiredToken",
    "ExpiredTokenException",
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "OptInRequired",
}

AUTH_MARKERS = (
    "unauthorizedssotokenerror",
    "sso session",
    "sso token",
    "token has expired",
    "token is expired",
    "expiredtoken",
    "unable to locate credentials",
    "authfailure",
    "unauthorizedoperation",
    "accessdenied",
    "invalidclienttokenid",
    "signaturedoesnotmatch",
    "aws sso login",
)


def is_auth_failure_text(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in AUTH_MARKERS)


class BackendMode(Enum):
    API = "api"
    SHELL = "shell"
    AUTOMATIC = "auto"

    @classmethod
    def parse(cls, value: object) -> "BackendMode":
        if isinstance(value, BackendMode):
            return value
        if not isinstance(value, str):
            raise ConfigurationError(
                f"Invalid backend: {value!r}. Must be one of: api, shell, auto"
            )
        normalized = value.strip().lower()
        mode = _BACKEND_ALIASES.get(normalized)
        if mode is None:
            raise ConfigurationError(
                f"Invalid backend: {value}. Must be one of: api, shell, auto",
                hint="Set A3S_BACKEND or --backend to api (sdk), shell (cli) or auto.",
            )
        return mode

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BackendMode":
        env = os.environ if environ is None else environ
        value = env.get("A3S_BACKEND", "")
        if not value.strip():
            return cls.AUTOMATIC
        return cls.parse(value)

    @property
    def label(self) -> str:
        return {
            BackendMode.API: "SDK",
            BackendMode.SHELL: "CLI",
            BackendMode.AUTOMATIC: "Auto",
        }[self]


_BACKEND_ALIASES = {
    "api": BackendMode.API,
    "sdk": BackendMode.API,
    "shell": BackendMode.SHELL,
    "cli": BackendMode.SHELL,
    "auto": BackendMode.AUTOMATIC,
    "automatic": BackendMode.AUTOMATIC,
}


@dataclass(frozen=True)
class Ec2Instance:
    id: str
    name: str
    state: str
    type: str
    public_ip: Optional[str] = None
    private_ip: Optional[str] = None
    availability_zone: Optional[str] = None
    launch_time: Optional[str] = None


def _format_launch_time(value: object) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str) and value:
        return value
    return None


def parse_ec2_reservations(response: object) -> list[Ec2Instance]:
    """Flatten a ``DescribeInstances`` response into instance records.

    Works on both the boto3 response dict and the decoded ``aws`` CLI
    output; the only difference is that boto3 hands back ``LaunchTime`` as a
    datetime.
    """
    if not isinstance(response, dict):
        return []
    instances: list[Ec2Instance] = []
    for reservation in response.get("Reservations") or []:
        if not isinstance(reservation, dict):
            continue
        for entry in reservation.get("Instances") or []:
            if not isinstance(entry, dict):
                continue
            name = ""
            for tag in entry.get("Tags") or []:
                if isinstance(tag, dict) and tag.get("Key") == "Name":
                    name = tag.get("Value") or ""
                    break
            state = entry.get("State") or {}
            placement = entry.get("Placement") or {}
            instances.append(
                Ec2Instance(
                    id=entry.get("InstanceId") or "",
                    name=name,
                    state=(state.get("Name") or "") if isinstance(state, dict) else "",
                    type=entry.get("InstanceType") or "",
                    public_ip=entry.get("PublicIpAddress"),
                    private_ip=entry.get("PrivateIpAddress"),
                    availability_zone=(
                        placement.get("AvailabilityZone")
                        if isinstance(placement, dict)
                        else None
                    ),
                    launch_time=_format_launch_time(entry.get("LaunchTime")),
                )
            )
    return instances


class ResourceProvider:
    """Lists resources of one category through some AWS access path."""

    name = "provider"

    async def list_category(self, category: str) -> list:
        method = getattr(self, f"list_{category}", None)
        if category not in CATEGORIES or method is None:
            raise UnimplementedCapability(category)
        return await method()

    async def list_ec2(self) -> list[Ec2Instance]:
        raise UnimplementedCapability(CATEGORY_EC2)

    async def list_s3(self) -> list:
        raise UnimplementedCapability(CATEGORY_S3)

    async def list_lambda(self) -> list:
        raise UnimplementedCapability(CATEGORY_LAMBDA)

    async def list_rds(self) -> list:
        raise UnimplementedCapability(CATEGORY_RDS)


class ApiProvider(ResourceProvider):
    name = "api"

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
    ) -> None:
        self.profile = profile or None
        self.endpoint_url = endpoint_url or None
        self._explicit_region = region or None
        self._access_key_id = access_key_id or None
        self._secret_access_key = secret_access_key or None
        self._session = None
        self._ec2 = None
        self._region: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ApiProvider":
        return cls(
            profile=settings.profile,
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            access_key_id=settings.access_key_id,
            secret_access_key=settings.secret_access_key,
        )

    def _static_credentials(self) -> Optional[tuple[str, str]]:
        if self.profile:
            return None
        if self._access_key_id and self._secret_access_key:
            return self._access_key_id, self._secret_access_key
        if self.endpoint_url:
            return LOCAL_ENDPOINT_CREDENTIALS
        return None

    def _get_session(self):
        if self._session is not None:
            return self._session
        if self.profile:
            self._session = boto3.session.Session(profile_name=self.profile)
        else:
            self._session = boto3.session.Session()
        return self._session

    @property
    def region(self) -> str:
        if self._region is not None:
            return self._region
        region = self._explicit_region
        if not region:
            try:
                region = self._get_session().region_name
            except ProfileNotFound:
                region = None
        self._region = region or DEFAULT_REGION
        return self._region

    def _client(self):
        if self._ec2 is not None:
            return self._ec2
        kwargs: dict[str, object] = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        credentials = self._static_credentials()
        if credentials:
            kwargs["aws_access_key_id"] = credentials[0]
            kwargs["aws_secret_access_key"] = credentials[1]
        self._ec2 = self._get_session().client("ec2", **kwargs)
        logger.debug(
            "Created EC2 client (profile=%s, region=%s, endpoint=%s)",
            self.profile or "default",
            self.region,
            self.endpoint_url or "aws",
        )
        return self._ec2

    async def list_ec2(self) -> list[Ec2Instance]:
        return await asyncio.to_thread(self._list_ec2)

    def _list_ec2(self) -> list[Ec2Instance]:
        try:
            client = self._client()
            instances: list[Ec2Instance] = []
            paginator = client.get_paginator("describe_instances")
            for page in paginator.paginate():
                instances.extend(parse_ec2_reservations(page))
        except (NoCredentialsError, PartialCredentialsError, ProfileNotFound) as exc:
            raise AuthError(str(exc), hint="Check AWS_PROFILE or your credentials.") from exc
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in AUTH_ERROR_CODES or is_auth_failure_text(str(exc)):
                raise AuthError(str(exc)) from exc
            raise TransportError(str(exc)) from exc
        except BotoCoreError as exc:
            if is_auth_failure_text(f"{type(exc).__name__}: {exc}"):
                raise AuthError(str(exc)) from exc
            raise TransportError(str(exc)) from exc
        return instances


class ShellProvider(ResourceProvider):
    name = "shell"

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        executable: str = "aws",
    ) -> None:
        self.profile = profile or None
        self.region = region or None
        self.executable = executable

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ShellProvider":
        return cls(profile=settings.profile, region=settings.region)

    def _command(self, *args: str) -> list[str]:
        command = [self.executable, *args, "--output", "json"]
        if self.profile:
            command.extend(["--profile", self.profile])
        if self.region:
            command.extend(["--region", self.region])
        return command

    async def _run_json(self, *args: str) -> dict:
        command = self._command(*args)
        logger.debug("Running %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise TransportError(
                f"AWS CLI not found; cannot run `{self.executable}`.",
                hint="Install the AWS CLI or use --backend=api.",
            ) from exc
        except OSError as exc:
            raise TransportError(f"Failed to run {self.executable}: {exc}") from exc
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            if not message:
                message = stdout.decode("utf-8", errors="replace").strip()
            if not message:
                message = f"{' '.join(args)} failed with exit code {process.returncode}."
            if is_auth_failure_text(message):
                raise AuthError(message)
            raise TransportError(message)
        text = stdout.decode("utf-8", errors="replace")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Could not parse aws CLI output: {exc}") from exc
        if not isinstance(payload, dict):
            raise ParseError("Could not parse aws CLI output: expected a JSON object")
        return payload

    async def list_ec2(self) -> list[Ec2Instance]:
        response = await self._run_json("ec2", "describe-instances")
        return parse_ec2_reservations(response)


def resolve_provider(
    mode: object, settings: Optional["Settings"] = None
) -> ResourceProvider:
    backend = BackendMode.parse(mode)
    if backend is BackendMode.SHELL:
        provider: ResourceProvider = (
            ShellProvider.from_settings(settings) if settings else ShellProvider()
        )
    else:
        provider = ApiProvider.from_settings(settings) if settings else ApiProvider()
    logger.debug("Resolved backend %s to %s", backend.value, type(provider).__name__)
    return provider
