"""
RunContext: everything a step action needs, passed explicitly instead of
living in globals or exported environment variables.
"""

import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import AppConfig
from .host import SystemHost
from .runlog import RunLog


@dataclass
class RunContext:
    config: AppConfig
    log: RunLog
    host: SystemHost = field(default_factory=SystemHost)
    env: Dict[str, str] = field(
        default_factory=lambda: {"DEBIAN_FRONTEND": "noninteractive"}
    )

    def run(
        self, cmd: List[str], input_text: Optional[str] = None, check: bool = True
    ) -> subprocess.CompletedProcess:
        return self.host.run(cmd, env=self.env, input_text=input_text, check=check)

    def set_display(self, display: str) -> None:
        self.env["DISPLAY"] = display
