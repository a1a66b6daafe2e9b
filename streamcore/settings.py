"""Typed settings for publishing, subscribing, pulling, pushing and HTTP serving."""

from __future__ import annotations

import re
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any

Handler = Callable[..., Any]
Middleware = Callable[[str, Handler], Handler]


@dataclass
class RegexpValue:
    """A compiled regular expression that may be unset."""

    pattern: re.Pattern[str] | None = None

    @classmethod
    def compile(cls, text: str) -> RegexpValue:
        return cls(re.compile(text))

    def valid(self) -> bool:
        return self.pattern is not None

    def __str__(self) -> str:
        return self.pattern.pattern if self.pattern is not None else ""

    def to_json(self) -> str:
        return f'"{self}"'

    @classmethod
    def from_json(cls, data: str | bytes) -> RegexpValue:
        """Build from a JSON string, with or without its surrounding quotes."""
        text = data.decode() if isinstance(data, bytes) else data
        if not text:
            return cls()
        if text.startswith('"'):
            text = text[1:]
        if text.endswith('"'):
            text = text[:-1]
        return cls.compile(text)


def _substitute(template: str, groups: tuple[str | None, ...]) -> str:
    for index, value in enumerate(groups):
        template = template.replace(f"${index}", value or "")
    return template


def _match_table(table: dict[str, str] | None, stream_path: str, use_regexp: bool) -> str:
    if not table:
        return ""
    url = table.get(stream_path)
    if url is not None:
        return url
    if not use_regexp:
        return ""
    for pattern, template in table.items():
        try:
            compiled = re.compile(pattern)
        except re.error:
            continue
        match = compiled.search(stream_path)
        if match is not None:
            return _substitute(template, (match.group(0), *match.groups()))
    return ""


@dataclass
class Publish:
    pub_audio: bool = True
    pub_video: bool = True
    kick_exist: bool = False
    publish_timeout: timedelta = timedelta(seconds=10)
    wait_close_timeout: timedelta = timedelta(0)
    delay_close_timeout: timedelta = timedelta(0)
    idle_timeout: timedelta = timedelta(0)
    pause_timeout: timedelta = timedelta(seconds=30)
    buffer_time: timedelta = timedelta(0)
    speed_limit: timedelta = timedelta(milliseconds=500)
    key: str = ""
    secret_arg_name: str = "secret"
    expire_arg_name: str = "expire"
    ring_size: str = "256-1024"

    def get_publish_config(self) -> Publish:
        """Return a copy of these settings."""
        return replace(self)


@dataclass
class Subscribe:
    sub_audio: bool = True
    sub_video: bool = True
    sub_video_arg_name: str = "vts"
    sub_audio_arg_name: str = "ats"
    sub_data_arg_name: str = "dts"
    sub_mode_arg_name: str = ""
    sub_audio_tracks: list[str] = field(default_factory=list)
    sub_video_tracks: list[str] = field(default_factory=list)
    sub_data_tracks: list[str] = field(default_factory=list)
    sub_mode: int = 0
    sync_mode: int = 0
    iframe_only: bool = False
    wait_timeout: timedelta = timedelta(seconds=10)
    write_buffer_size: int = 0
    key: str = ""
    secret_arg_name: str = "secret"
    expire_arg_name: str = "expire"
    internal: bool = False

    def get_subscribe_config(self) -> Subscribe:
        return self


@dataclass
class Pull:
    re_pull: int = 0
    enable_regexp: bool = False
    pull_on_start: dict[str, str] | None = None
    pull_on_sub: dict[str, str] | None = None
    proxy: str = ""
    pull_on_sub_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )
    pull_on_start_lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def get_pull_config(self) -> Pull:
        return self

    def check_pull_on_start(self, stream_path: str) -> str:
        """Return the URL to pull at start-up for ``stream_path``, or ``""``."""
        with self.pull_on_start_lock:
            return _match_table(self.pull_on_start, stream_path, self.enable_regexp)

    def check_pull_on_sub(self, stream_path: str) -> str:
        """Return the URL to pull when ``stream_path`` is subscribed, or ``""``."""
        with self.pull_on_sub_lock:
            return _match_table(self.pull_on_sub, stream_path, self.enable_regexp)


@dataclass
class Push:
    enable_regexp: bool = False
    re_push: int = 0
    push_list: dict[str, str] | None = None
    proxy: str = ""

    def get_push_config(self) -> Push:
        return self

    def add_push(self, url: str, stream_path: str) -> None:
        if self.push_list is None:
            self.push_list = {}
        self.push_list[stream_path] = url

    def check_push(self, stream_path: str) -> str:
        """Return the URL ``stream_path`` is pushed to, or ``""``."""
        return _match_table(self.push_list, stream_path, self.enable_regexp)


@dataclass
class Console:
    server: str = "console.monibuca.com:44944"
    secret: str = ""
    public_addr: str = ""
    public_addr_tls: str = ""


@dataclass
class HTTPSettings:
    listen_addr: str = ""
    listen_addr_tls: str = ""
    cert_file: str = ""
    key_file: str = ""
    cors: bool = True
    username: str = ""
    password: str = ""
    read_timeout: timedelta = timedelta(0)
    write_timeout: timedelta = timedelta(0)
    idle_timeout: timedelta = timedelta(0)
    _routes: dict[str, Handler] = field(default_factory=dict, init=False, repr=False)
    _middlewares: list[Middleware] = field(default_factory=list, init=False, repr=False)

    def get_http_config(self) -> HTTPSettings:
        return self

    def add_middleware(self, middleware: Middleware) -> None:
        self._middlewares.append(middleware)

    def handle(self, path: str, handler: Handler) -> None:
        """Register ``handler`` for ``path``, wrapped by every middleware."""
        for middleware in self._middlewares:
            handler = middleware(path, handler)
        self._routes[path] = handler

    def handler(self, path: str) -> tuple[Handler | None, str]:
        """Find the handler for ``path``: exact match, else the longest ``/`` prefix."""
        if path in self._routes:
            return self._routes[path], path
        best = ""
        for pattern in self._routes:
            if pattern.endswith("/") and path.startswith(pattern) and len(pattern) > len(best):
                best = pattern
        if best:
            return self._routes[best], best
        return None, ""


_global_settings: EngineSettings | None = None


def get_global() -> EngineSettings | None:
    """Return the settings installed by :meth:`EngineSettings.init_default_http`."""
    return _global_settings


@dataclass
class EngineSettings:
    publish: Publish = field(default_factory=Publish)
    subscribe: Subscribe = field(default_factory=Subscribe)
    http: HTTPSettings = field(default_factory=HTTPSettings)
    console: Console = field(default_factory=Console)
    enable_avcc: bool = True
    enable_rtp: bool = True
    enable_sub_event: bool = True
    enable_auth: bool = True
    log_lang: str = "zh"
    log_level: str = "info"
    event_bus_size: int = 10
    pulse_interval: timedelta = timedelta(seconds=5)
    disable_all: bool = False
    rtp_reorder_buffer_len: int = 50
    pool_size: int = 0
    _enable_report: bool = field(default=False, init=False, repr=False)
    _instance_id: str = field(default="", init=False, repr=False)

    def get_enable_report(self) -> bool:
        return self._enable_report

    def get_instance_id(self) -> str:
        return self._instance_id

    def get_publish_config(self) -> Publish:
        return self.publish.get_publish_config()

    def get_subscribe_config(self) -> Subscribe:
        return self.subscribe

    def init_default_http(self) -> None:
        """Install these as the global settings and set the default listen addresses."""
        global _global_settings
        _global_settings = self
        self.http.listen_addr_tls = ":8443"
        self.http.listen_addr = ":8080"