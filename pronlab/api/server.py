"""
pronlab/api/server.py
======================
HTTP API - PronLab

Responsibility:
    - POST /api/v1/assess            run one audio file through every vendor
    - GET  /api/v1/vendors           registered vendors and their capabilities
    - GET  /api/v1/connections       per-vendor connection check
    - GET  /api/v1/phrases           quick test phrases + default language
    - GET  /api/v1/sessions          saved sessions
    - GET  /api/v1/sessions/{id}     one session as a downloadable JSON file

The blocking lab run is moved off the event loop with asyncio.to_thread.
"""

import asyncio
import logging

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from pronlab.adapters.registry import AdapterRegistry, build_registry
from pronlab.audio.codec import AudioSample, DecodeError, container_format, prepare_wav
from pronlab.config import Settings, load_settings
from pronlab.lab import AssessmentRequest, check_connections, run_all
from pronlab.sessions import SessionStore

logger = logging.getLogger("pronlab.api")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    registry: AdapterRegistry | None = None,
    store: SessionStore | None = None,
) -> FastAPI:
    """
    Build the FastAPI app around an explicit settings / registry / store.

    Anything not passed in is built from the environment.
    """
    settings = settings or load_settings()

    app = FastAPI(
        title="PronLab",
        description="Side-by-side comparison of pronunciation-assessment APIs.",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.registry = registry if registry is not None else build_registry(settings)
    app.state.store = store if store is not None else SessionStore(settings.sessions_path)

    app.add_api_route("/api/v1/assess", assess, methods=["POST"])
    app.add_api_route("/api/v1/vendors", list_vendors, methods=["GET"])
    app.add_api_route("/api/v1/connections", connections, methods=["GET"])
    app.add_api_route("/api/v1/phrases", phrases, methods=["GET"])
    app.add_api_route("/api/v1/sessions", list_sessions, methods=["GET"])
    app.add_api_route("/api/v1/sessions/{session_id}", export_session, methods=["GET"])
    return app


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


async def assess(
    request: Request,
    audio_file: UploadFile = File(...),
    reference_text: str = Form(...),
    language: str | None = Form(None),
    vendors: str | None = Form(None),
    save: bool | None = Form(None),
    sample_rate: int | None = Form(None),
    trim: bool = Form(False),
    normalize: bool = Form(False),
):
    """
    Run the uploaded audio through the selected (default: all) vendors.

    Optional ``sample_rate`` / ``trim`` / ``normalize`` re-encode the audio
    as 16-bit WAV before dispatch.
    """
    settings: Settings = request.app.state.settings
    registry: AdapterRegistry = request.app.state.registry

    if not reference_text.strip():
        raise HTTPException(status_code=400, detail="Reference text is required.")

    audio_bytes = await audio_file.read()
    if not audio_bytes:
        raise HTTPException(status_code=400, detail="Audio file is empty.")

    logger.info("Audio file received: %s (%.1f KB)", audio_file.filename, len(audio_bytes) / 1024)

    if vendors:
        names = [v.strip() for v in vendors.split(",") if v.strip()]
        try:
            registry = registry.subset(names)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown vendor: {exc.args[0]}")

    if not len(registry):
        raise HTTPException(status_code=503, detail="No APIs configured.")

    container = audio_file.content_type or audio_file.filename or ""
    if container_format(container) in ("", "octet-stream") and audio_file.filename:
        container = audio_file.filename
    sample = AudioSample(
        data=audio_bytes,
        container=container or "wav",
        filename=audio_file.filename or "audio.wav",
    )

    if sample_rate is not None or trim or normalize:
        try:
            wav_bytes = await asyncio.to_thread(
                prepare_wav, sample, sample_rate=sample_rate, trim=trim, normalize=normalize,
            )
        except DecodeError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        sample = AudioSample(data=wav_bytes, container="wav", filename="audio.wav")

    lab_request = AssessmentRequest(
        audio=sample,
        reference_text=reference_text.strip(),
        language=language or settings.default_language,
    )
    report = await asyncio.to_thread(run_all, lab_request, registry, settings.costs)
    body = report.to_dict()

    if settings.auto_save_sessions if save is None else save:
        session = request.app.state.store.append(report, len(audio_bytes))
        body["session_id"] = session["id"]

    return JSONResponse(status_code=200, content=body)


async def list_vendors(request: Request):
    registry: AdapterRegistry = request.app.state.registry
    return {
        name: adapter.get_capabilities().to_dict()
        for name, adapter in registry.items()
    }


async def connections(request: Request):
    registry: AdapterRegistry = request.app.state.registry
    if not len(registry):
        raise HTTPException(status_code=503, detail="No APIs configured.")
    status = await asyncio.to_thread(check_connections, registry)
    return {"connected": sum(status.values()), "total": len(status), "vendors": status}


async def phrases(request: Request):
    settings: Settings = request.app.state.settings
    return {
        "default_language": settings.default_language,
        "phrases": list(settings.test_phrases),
    }


async def list_sessions(request: Request):
    store: SessionStore = request.app.state.store
    return {"cumulative_cost": store.cumulative_cost, "sessions": store.records()}


async def export_session(request: Request, session_id: int):
    store: SessionStore = request.app.state.store
    try:
        document = store.export(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found.")
    return Response(
        content=document,
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{store.export_filename(session_id)}"',
        },
    )


app = create_app()
