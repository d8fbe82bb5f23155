"""Configuration — Pydantic models for pstack settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_PROMPT = "(gdb) "
REAP_DELAY = 1.0
REAP_RETRY_COUNT = 5


class GdbConfig(BaseModel):
    """Debugger executable and its interactive prompt.

    ``--nx`` is always passed by the launcher, so ``args`` only holds
    extra arguments (e.g. ``["-q"]``).
    """

    path: str = Field(default="gdb", description="gdb executable, looked up on PATH")
    args: list[str] = Field(default_factory=list)
    prompt: str = Field(
        default=DEFAULT_PROMPT,
        min_length=1,
        description="Prompt string gdb prints when it is ready for a command",
    )


class ReapConfig(BaseModel):
    """Polling schedule used while waiting for gdb to exit."""

    delay: float = Field(default=REAP_DELAY, gt=0, description="Seconds between polls")
    retry_count: int = Field(
        default=REAP_RETRY_COUNT,
        ge=1,
        description="Failed polls before SIGTERM; SIGKILL follows one poll later",
    )


class PstackConfig(BaseModel):
    """Top-level pstack configuration."""

    gdb: GdbConfig = Field(default_factory=GdbConfig)
    reap: ReapConfig = Field(default_factory=ReapConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> PstackConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            PSTACK_GDB               - gdb executable
            PSTACK_GDB_PROMPT        - gdb prompt string
            PSTACK_REAP_DELAY        - seconds between exit-status polls
            PSTACK_REAP_RETRY_COUNT  - failed polls before SIGTERM
        """
        load_dotenv()

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        gdb = config_data.get("gdb", {})
        reap = config_data.get("reap", {})

        env_gdb = os.environ.get("PSTACK_GDB")
        if env_gdb:
            gdb["path"] = env_gdb

        env_prompt = os.environ.get("PSTACK_GDB_PROMPT")
        if env_prompt:
            gdb["prompt"] = env_prompt

        env_delay = os.environ.get("PSTACK_REAP_DELAY")
        if env_delay:
            reap["delay"] = float(env_delay)

        env_retries = os.environ.get("PSTACK_REAP_RETRY_COUNT")
        if env_retries:
            reap["retry_count"] = int(env_retries)

        if gdb:
            config_data["gdb"] = gdb
        if reap:
            config_data["reap"] = reap

        return cls.model_validate(config_data)
