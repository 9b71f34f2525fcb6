"""On-prem deployment target."""
from __future__ import annotations

from typing import List

from orch_installer.core import register_target
from orch_installer.core.action import Action
from orch_installer.core.stage import Stage, StepStage
from orch_installer.settings import Settings
from orch_installer.steps.on_prem import OnPremNetworkStep


@register_target("on-prem", "Prepare on-prem virtual machines.")
def create_on_prem_stages(settings: Settings, action: Action) -> List[Stage]:
    return [StepStage("Network", [OnPremNetworkStep()], ["network"])]
