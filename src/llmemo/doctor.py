from __future__ import annotations

import os
from dataclasses import dataclass

from llmemo.audio.capture import microphone_available
from llmemo.config import Settings
from llmemo.errors import ConfigError
from llmemo.storage.archive import ArchiveStore
from llmemo.storage.document import JsonDocumentStore


@dataclass(slots=True)
class DoctorCheck:
    name: str
    status: str
    detail: str


def _check_api_key(settings: Settings) -> DoctorCheck:
    if not settings.has_api_key:
        return DoctorCheck(
            "API key",
            "fail",
            "No API key configured. Set LLMEMO_API_KEY or ELEVENLABS_API_KEY.",
        )
    return DoctorCheck("API key", "ok", f"Configured ({settings.api_key.strip()[:4]}...)")


def _check_data_dir(settings: Settings) -> DoctorCheck:
    try:
        settings.ensure_dirs()
    except OSError as exc:  # pragma: no cover - environment dependent
        return DoctorCheck("Data directory", "fail", f"Cannot create {settings.data_dir}: {exc}")
    if not os.access(settings.data_dir, os.W_OK):
        return DoctorCheck("Data directory", "fail", f"Not writable: {settings.data_dir}")
    return DoctorCheck("Data directory", "ok", f"Writable at {settings.data_dir}")


def _check_archive(settings: Settings) -> DoctorCheck:
    store = ArchiveStore(JsonDocumentStore(settings.store_path))
    store.load()
    if store.load_error is not None:
        return DoctorCheck("Archive", "fail", str(store.load_error))
    return DoctorCheck("Archive", "ok", f"{len(store.transcripts)} transcripts in {settings.store_path}")


def _check_language(settings: Settings) -> DoctorCheck:
    try:
        code = settings.resolve_language()
    except ConfigError as exc:
        return DoctorCheck("Language", "fail", str(exc).split(". Allowed")[0])
    return DoctorCheck("Language", "ok", code)


def _check_microphone() -> DoctorCheck:
    available, detail = microphone_available()
    return DoctorCheck("Microphone", "ok" if available else "warn", detail)


def run_doctor(settings: Settings) -> list[DoctorCheck]:
    return [
        _check_api_key(settings),
        _check_data_dir(settings),
        _check_archive(settings),
        _check_language(settings),
        _check_microphone(),
    ]
