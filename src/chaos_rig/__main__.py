"""Run the chaos rig: ``python -m chaos_rig`` or ``chaos-rig``."""

from __future__ import annotations

import uvicorn

from chaos_rig.server.app import create_app
from chaos_rig.server.dependencies import get_host, get_port


def main() -> None:
    uvicorn.run(create_app(), host=get_host(), port=get_port(), log_config=None)


if __name__ == "__main__":
    main()
