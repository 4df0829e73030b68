import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import OpenAI


def get_openai_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout_s: Optional[float] = None,
) -> OpenAI:
    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not set")
    kwargs = {"api_key": api_key, "max_retries": 0}
    if base_url:
        kwargs["base_url"] = base_url
    if timeout_s:
        kwargs["timeout"] = timeout_s
    return OpenAI(**kwargs)


def apply_cors(app: FastAPI):
    default_origins = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    origins = os.getenv("CORS_ALLOW_ORIGINS")
    if origins:
        allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]
    else:
        allowed_origins = default_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
