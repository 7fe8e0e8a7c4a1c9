from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig
from .host import OfflineHost
from .session import PipelineController


@dataclass
class AppState:
    config: AppConfig
    host: OfflineHost
    controller: PipelineController
    config_path: str | None = None

    @classmethod
    def from_config(cls, cfg: AppConfig, config_path: str | None = None) -> AppState:
        host = OfflineHost.from_config(cfg.host)
        controller = PipelineController(host, cfg.pipeline)
        return cls(
            config=cfg,
            host=host,
            controller=controller,
            config_path=config_path,
        )

    def close(self) -> None:
        self.controller.dispose()
