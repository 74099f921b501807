#!/usr/bin/env python3
"""Print upload, chunking and retry limits (from config and main app). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from transcriber.core.config import settings

# Rate limit is hardcoded in main.py
RATE_LIMIT_REQUESTS = 20
RATE_LIMIT_WINDOW_SECONDS = 60


def main():
    """Print upload and pipeline limits (MAX_UPLOAD_MB, UPLOAD_TTL_SECONDS, chunking, retries, rate limit)."""
    max_audio_min = settings.max_chunks * settings.chunk_seconds // 60
    print("Upload & pipeline limits")
    print("------------------------")
    print(f"  MAX_UPLOAD_MB            = {settings.max_upload_mb} MB (max size per uploaded file)")
    print(f"  UPLOAD_TTL_SECONDS       = {settings.upload_ttl_seconds} s (upload purged if no job starts)")
    print(f"  CHUNK_THRESHOLD_SECONDS  = {settings.chunk_threshold_seconds} s (longer audio is chunked)")
    print(f"  CHUNK_SECONDS            = {settings.chunk_seconds} s (length of each chunk)")
    print(f"  MAX_CHUNKS               = {settings.max_chunks} (about {max_audio_min} min of audio)")
    print(f"  RETRY_ATTEMPTS           = {settings.retry_attempts} (backoff {settings.retry_backoff_seconds}s x attempt)")
    print(f"  OPENAI_TIMEOUT_SECONDS   = {settings.openai_timeout_seconds} s")
    print(f"  Rate limit               = {RATE_LIMIT_REQUESTS} requests / {RATE_LIMIT_WINDOW_SECONDS} s (per client IP)")
    print(f"  OPENAI_API_KEY           = {'set' if settings.openai_api_key else 'MISSING'}")
    print("")
    print("Env: see .env.example")


if __name__ == "__main__":
    main()
