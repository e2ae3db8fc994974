"""HTTP client for the netdisk (xpan / PCS) API.

This module provides:
- PcsClient: HTTP client for communicating with the API
- Account operations (user info, quota)
- File metadata operations (list, search, filemetas, delete, create folder)
- Sliced upload protocol calls (precreate, locateupload, superfile2, create)
- Single-shot upload and streamed download
"""

from __future__ import annotations

import json
import logging
import posixpath
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, BinaryIO

import httpx

from pcscli.client.errors import ClientError, NetworkError, ServerError, UnknownError
from pcscli.core.config import ApiConfig
from pcscli.core.slicing import SliceManifest
from pcscli.core.types import ConflictPolicy

logger = logging.getLogger(__name__)

MiB = 1024 * 1024
GiB = 1024 * MiB

XPAN_FILE_PATH = "/rest/2.0/xpan/file"
XPAN_NAS_PATH = "/rest/2.0/xpan/nas"
XPAN_MULTIMEDIA_PATH = "/rest/2.0/xpan/multimedia"
QUOTA_PATH = "/api/quota"
PCS_FILE_PATH = "/rest/2.0/pcs/file"
PCS_SUPERFILE_PATH = "/rest/2.0/pcs/superfile2"

# Search keys are limited to 30 characters
SEARCH_KEY_MAX_LEN = 30


@dataclass
class AccountInfo:
    """Account info from the server."""

    baidu_name: str
    netdisk_name: str
    vip_type: int
    uk: int
    avatar_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountInfo:
        """Create from API response dictionary."""
        return cls(
            baidu_name=data.get("baidu_name", ""),
            netdisk_name=data.get("netdisk_name", ""),
            vip_type=int(data.get("vip_type", 0)),
            uk=int(data.get("uk", 0)),
            avatar_url=data.get("avatar_url", ""),
        )

    @property
    def vip_label(self) -> str:
        """Human name of the membership tier."""
        return {0: "regular user", 1: "member", 2: "super member"}.get(
            self.vip_type, "unknown membership"
        )

    @property
    def block_size(self) -> int:
        """Upload block size allowed for this account tier.

        Regular users slice at 4MB, members at 16MB, super members at 32MB.
        """
        return {0: 4 * MiB, 1: 16 * MiB, 2: 32 * MiB}.get(self.vip_type, 4 * MiB)

    @property
    def max_file_size(self) -> int:
        """Largest single file this account tier may upload."""
        return {0: 4 * GiB, 1: 10 * GiB, 2: 20 * GiB}.get(self.vip_type, 4 * GiB)


@dataclass
class DiskQuota:
    """Disk usage from the server."""

    total: int
    used: int
    free: int
    expire: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiskQuota:
        """Create from API response dictionary."""
        return cls(
            total=int(data.get("total", 0)),
            used=int(data.get("used", 0)),
            free=int(data.get("free", 0)),
            expire=bool(data.get("expire", False)),
        )

    @property
    def idle(self) -> int:
        """Space still available for new files."""
        return self.total - self.used + self.free


@dataclass
class RemoteEntry:
    """Directory listing item from the server."""

    fs_id: int
    path: str
    server_filename: str
    size: int
    is_dir: bool
    server_mtime: int = 0
    server_ctime: int = 0
    md5: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteEntry:
        """Create from API response dictionary."""
        path = data["path"]
        return cls(
            fs_id=int(data["fs_id"]),
            path=path,
            server_filename=data.get("server_filename") or posixpath.basename(path),
            size=int(data.get("size", 0)),
            is_dir=int(data.get("isdir", 0)) == 1,
            server_mtime=int(data.get("server_mtime", 0)),
            server_ctime=int(data.get("server_ctime", 0)),
            md5=data.get("md5"),
        )


@dataclass
class FileMeta:
    """File meta information (filemetas) from the server."""

    fs_id: int
    filename: str
    size: int
    is_dir: bool
    dlink: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileMeta:
        """Create from API response dictionary."""
        return cls(
            fs_id=int(data.get("fs_id", 0)),
            filename=data.get("filename", ""),
            size=int(data.get("size", 0)),
            is_dir=int(data.get("isdir", 0)) == 1,
            dlink=data.get("dlink"),
        )


@dataclass
class RemoteFile:
    """Metadata of a file created by an upload."""

    fs_id: int
    path: str
    size: int
    ctime: int
    mtime: int
    md5: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        return cls(
            fs_id=int(data["fs_id"]),
            path=data["path"],
            size=int(data.get("size", 0)),
            ctime=int(data.get("ctime", 0)),
            mtime=int(data.get("mtime", 0)),
            md5=data.get("md5"),
        )


@dataclass
class UploadSession:
    """Server-side handle of one sliced upload, returned by precreate."""

    path: str
    upload_id: str
    return_type: int
    block_list: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], sent_path: str) -> UploadSession:
        """Create from API response dictionary.

        The server sometimes omits the echoed path; the path that was sent
        is used instead.
        """
        try:
            upload_id = data["uploadid"]
        except KeyError:
            raise ServerError("precreate response carries no uploadid", raw=json.dumps(data)) from None
        return cls(
            path=data.get("path") or sent_path,
            upload_id=upload_id,
            return_type=int(data.get("return_type", 0)),
            block_list=[int(i) for i in data.get("block_list", [])],
        )


@dataclass
class UploadTarget:
    """Data nodes designated to receive block bytes for a session."""

    servers: list[str] = field(default_factory=list)
    bak_servers: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadTarget:
        """Create from API response dictionary."""
        return cls(
            servers=[s["server"] for s in data.get("servers", []) if s.get("server")],
            bak_servers=[s["server"] for s in data.get("bak_servers", []) if s.get("server")],
        )

    def select(self, default: str) -> str:
        """First primary server, else first backup, else ``default``."""
        if self.servers:
            return self.servers[0].rstrip("/")
        if self.bak_servers:
            return self.bak_servers[0].rstrip("/")
        return default


class PcsClient:
    """HTTP client for the netdisk API.

    One httpx.Client is created per PcsClient and reused for every call,
    including all blocks of every transfer made through it.
    """

    def __init__(
        self,
        access_token: str,
        config: ApiConfig | None = None,
        app_name: str = "",
    ) -> None:
        """Initialize the client.

        Args:
            access_token: OAuth access token.
            config: API hosts and connection settings.
            app_name: Registered application name (for single-shot uploads).
        """
        self._config = config or ApiConfig()
        self._access_token = access_token
        self._app_name = app_name
        self._account: AccountInfo | None = None
        self._quota: DiskQuota | None = None
        self._client = httpx.Client(
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            headers={
                "User-Agent": self._config.user_agent,
                "Accept": "application/json",
            },
        )

    @property
    def config(self) -> ApiConfig:
        """API configuration in use."""
        return self._config

    @property
    def apps_path(self) -> str:
        """Remote directory of this application."""
        return posixpath.join("/apps", self._app_name)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> PcsClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    # === Plumbing ===

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Decode an API response and raise on a non-zero errno."""
        text = response.text
        logger.debug(f"Response {response.status_code}: {text[:2000]}")
        try:
            data = response.json()
        except ValueError:
            raise ServerError("", raw=text or f"HTTP {response.status_code}") from None
        if not isinstance(data, dict):
            raise ServerError("", raw=text)

        errno = data.get("errno", data.get("error_code"))
        if errno is not None and int(errno) != 0:
            message = data.get("errmsg") or data.get("error_msg") or data.get("err_msg") or ""
            raise ServerError(str(message), int(errno), raw=text)
        if errno is None and response.status_code >= 400:
            raise ServerError("", raw=text or f"HTTP {response.status_code}")
        return data

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the decoded body."""
        query = {k: v for k, v in (params or {}).items() if v is not None}
        logger.debug(f"{method} {url} {query} {'with payload' if data or files else 'no payload'}")
        query["access_token"] = self._access_token
        try:
            response = self._client.request(method, url, params=query, data=data, files=files)
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__) from e
        return self._handle_response(response)

    def _api(self, path: str) -> str:
        return f"{self._config.api_url}{path}"

    # === Account ===

    def get_user_info(self) -> AccountInfo:
        """Get the account name and membership tier.

        Returns:
            Account info.
        """
        data = self._request("GET", self._api(XPAN_NAS_PATH), params={"method": "uinfo"})
        return AccountInfo.from_dict(data)

    def get_quota(self, check_free: bool = False, check_expire: bool = False) -> DiskQuota:
        """Get total, used and free space.

        Args:
            check_free: Also report free (bonus) capacity.
            check_expire: Also report capacity expiring within 7 days.
        """
        data = self._request(
            "GET",
            self._api(QUOTA_PATH),
            params={
                "checkfree": 1 if check_free else 0,
                "checkexpire": 1 if check_expire else 0,
            },
        )
        return DiskQuota.from_dict(data)

    def warm(self) -> None:
        """Fetch and cache account info and quota."""
        self._account = self.get_user_info()
        self._quota = self.get_quota()

    @property
    def account(self) -> AccountInfo:
        """Cached account info (fetched on first use)."""
        if self._account is None:
            self._account = self.get_user_info()
        return self._account

    # === File metadata ===

    def list_dir(self, path: str) -> list[RemoteEntry]:
        """List a remote directory.

        Args:
            path: Absolute remote directory path.

        Returns:
            Entries of the directory (not recursive).
        """
        data = self._request(
            "GET",
            self._api(XPAN_FILE_PATH),
            params={"method": "list", "dir": path},
        )
        return [RemoteEntry.from_dict(e) for e in data.get("list", [])]

    def list_dir_recursive(self, path: str) -> list[RemoteEntry]:
        """List every file below a remote directory.

        Subdirectories that cannot be listed are skipped.
        """
        files: list[RemoteEntry] = []
        try:
            entries = self.list_dir(path)
        except ServerError as e:
            logger.warning(f"Cannot list {path}: {e}")
            return files
        for entry in entries:
            if entry.is_dir:
                files.extend(self.list_dir_recursive(entry.path))
            else:
                files.append(entry)
        return files

    def search(self, name_or_path: str) -> list[RemoteEntry]:
        """Search files by name, recursively.

        The key is the last path component without its extension, trimmed
        to its last 30 characters. The directory part, if any, limits the
        search.
        """
        name = name_or_path.rsplit("/", 1)[-1]
        if "." in name:
            name = name[: name.rfind(".")]
        key = name[-SEARCH_KEY_MAX_LEN:] or name_or_path

        if name_or_path.endswith("/"):
            directory: str | None = name_or_path
        elif "/" in name_or_path:
            directory = name_or_path[: name_or_path.rfind("/")] or "/"
        else:
            directory = None

        data = self._request(
            "GET",
            self._api(XPAN_FILE_PATH),
            params={"method": "search", "key": key, "dir": directory, "recursion": 1},
        )
        return [RemoteEntry.from_dict(e) for e in data.get("list", [])]

    def get_file_metas(self, fs_ids: list[int], dlink: bool = False) -> list[FileMeta]:
        """Query meta information of up to 100 files.

        Args:
            fs_ids: File ids.
            dlink: Also return download links (valid for 8 hours).
        """
        data = self._request(
            "GET",
            self._api(XPAN_MULTIMEDIA_PATH),
            params={
                "method": "filemetas",
                "fsids": json.dumps(fs_ids),
                "dlink": 1 if dlink else None,
            },
        )
        return [FileMeta.from_dict(m) for m in data.get("list", [])]

    def get_fs_id(self, path: str) -> int:
        """Resolve a remote file path to its file id.

        Raises:
            UnknownError: If the path is a directory or is not found.
        """
        if path.endswith("/"):
            raise UnknownError(f"Directories have no file id: {path}")
        parent = posixpath.dirname(path) or "/"
        for entry in self.list_dir(parent):
            if entry.path == path:
                return entry.fs_id
        raise UnknownError(f"File not found: {path}")

    def delete(self, paths: list[str], is_async: bool | None = None) -> dict[str, Any]:
        """Delete files or directories.

        Args:
            paths: Absolute remote paths.
            is_async: True to delete in the background, False to wait for
                the deletion, None to let the server decide.
        """
        mode = {False: 0, None: 1, True: 2}[is_async]
        return self._request(
            "POST",
            self._api(XPAN_FILE_PATH),
            params={"method": "filemanager", "opera": "delete"},
            data={"async": mode, "filelist": json.dumps(paths)},
        )

    def create_folder(self, path: str) -> RemoteEntry:
        """Create a remote folder."""
        data = self._request(
            "POST",
            self._api(XPAN_FILE_PATH),
            params={"method": "create"},
            data={"path": path, "isdir": "1"},
        )
        data.setdefault("isdir", 1)
        return RemoteEntry.from_dict(data)

    # === Sliced upload protocol ===

    def precreate(
        self,
        remote_path: str,
        manifest: SliceManifest,
        policy: ConflictPolicy,
    ) -> UploadSession:
        """Open a sliced upload session.

        Args:
            remote_path: Absolute remote path of the file.
            manifest: Slice manifest of the local file.
            policy: Conflict policy (sent as rtype).

        Returns:
            The server-assigned upload session.
        """
        data = self._request(
            "POST",
            self._api(XPAN_FILE_PATH),
            params={"method": "precreate"},
            data={
                "path": remote_path,
                "size": manifest.size,
                "isdir": 0,
                "block_list": json.dumps(list(manifest.block_list)),
                "autoinit": 1,
                "rtype": policy.rtype,
                "content-md5": manifest.content_md5,
                "slice-md5": manifest.slice_md5,
                "local_ctime": manifest.ctime,
                "local_mtime": manifest.mtime,
            },
        )
        return UploadSession.from_dict(data, remote_path)

    def locate_upload(self, session: UploadSession) -> UploadTarget:
        """Get the data nodes that accept blocks for ``session``."""
        data = self._request(
            "GET",
            f"{self._config.file_server_url}{PCS_FILE_PATH}",
            params={
                "method": "locateupload",
                "appid": self._config.locate_app_id,
                "path": session.path,
                "uploadid": session.upload_id,
                "upload_version": "2.0",
            },
        )
        return UploadTarget.from_dict(data)

    def upload_block(
        self,
        session: UploadSession,
        server: str,
        part_index: int,
        stream: BinaryIO,
        filename: str | None = None,
    ) -> str:
        """Upload one block as a multipart body.

        Args:
            session: Upload session from precreate.
            server: Base URL of the data node.
            part_index: Block index, from 0.
            stream: Readable binary stream positioned over the block bytes.
            filename: Multipart file name (default ``file_<index>``).

        Returns:
            MD5 of the block as computed by the server.
        """
        try:
            data = self._request(
                "POST",
                f"{server}{PCS_SUPERFILE_PATH}",
                params={
                    "method": "upload",
                    "type": "tmpfile",
                    "path": session.path,
                    "uploadid": session.upload_id,
                    "partseq": part_index,
                },
                files={
                    "file": (
                        filename or f"file_{part_index}",
                        stream,
                        "application/octet-stream",
                    )
                },
            )
        except OSError as e:
            raise ClientError(f"Cannot read block {part_index}: {e}") from e
        md5 = data.get("md5")
        if not md5:
            raise ServerError("", raw=json.dumps(data))
        return str(md5)

    def create_file(
        self,
        session: UploadSession,
        manifest: SliceManifest,
        block_list: list[str],
        policy: ConflictPolicy,
    ) -> RemoteFile:
        """Merge uploaded blocks into the final remote file.

        Args:
            session: Upload session from precreate.
            manifest: Manifest used for precreate (size and timestamps).
            block_list: Server block digests, in block order.
            policy: Same conflict policy as sent to precreate.
        """
        data = self._request(
            "POST",
            self._api(XPAN_FILE_PATH),
            params={"method": "create"},
            data={
                "path": session.path,
                "size": manifest.size,
                "isdir": "0",
                "block_list": json.dumps(block_list),
                "uploadid": session.upload_id,
                "rtype": policy.rtype,
                "local_ctime": manifest.ctime,
                "local_mtime": manifest.mtime,
                "is_revision": 1,
                "mode": 2,
            },
        )
        return RemoteFile.from_dict(data)

    # === Single-shot upload ===

    def to_apps_path(self, remote_path: str) -> str:
        """Place ``remote_path`` under ``/apps/<app_name>/`` if it is not already."""
        apps = self.apps_path
        if remote_path == apps or remote_path.startswith(apps + "/"):
            return remote_path
        return posixpath.join(apps, remote_path.lstrip("/"))

    def upload_single(
        self,
        stream: BinaryIO,
        remote_path: str,
        policy: ConflictPolicy,
        filename: str = "file_0",
    ) -> RemoteFile:
        """Upload a whole file in one multipart request.

        The endpoint only accepts paths under ``/apps/<app_name>/``; other
        paths are moved there.
        """
        pcs_path = self.to_apps_path(remote_path)
        try:
            data = self._request(
                "POST",
                f"{self._config.file_server_url}{PCS_FILE_PATH}",
                params={"method": "upload", "path": pcs_path, "ondup": policy.ondup},
                files={"file": (filename, stream, "application/octet-stream")},
            )
        except OSError as e:
            raise ClientError(f"Cannot read {filename}: {e}") from e
        return RemoteFile.from_dict(data)

    # === Download ===

    @contextmanager
    def stream_download(self, dlink: str) -> Iterator[httpx.Response]:
        """Open a streamed GET on a download link.

        The response is yielded once headers are received and the status is
        successful.

        Raises:
            NetworkError: If the connection fails.
            ServerError: If the server answers with an error status.
        """
        logger.debug(f"GET {dlink}")
        # The link carries its own signed query; the token is added to it.
        url = httpx.URL(dlink).copy_merge_params({"access_token": self._access_token})
        try:
            with self._client.stream("GET", url) as response:
                if response.status_code >= 400:
                    response.read()
                    raise ServerError(
                        "",
                        raw=response.text or f"HTTP {response.status_code}",
                    )
                yield response
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__) from e
