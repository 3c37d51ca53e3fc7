import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from kubestrap.logging import setup_logger
from kubestrap.modules import bootstrap
from kubestrap.modules.kubeadm import KubestrapError

logger = setup_logger("kubestrap.api", logging.INFO)

router = APIRouter()


class BootstrapRequest(BaseModel):
    inventory_path: str
    config_path: Optional[str] = None
    forks: Optional[int] = Field(default=None, ge=1)
    kubernetes_version: Optional[str] = None
    pod_cidr: Optional[str] = None
    cri_version: Optional[str] = None
    interface: Optional[str] = None

    def overrides(self):
        return bootstrap.cluster_overrides(
            self.forks, self.kubernetes_version, self.pod_cidr, self.cri_version, self.interface
        )


def _load(req: BootstrapRequest):
    try:
        return bootstrap.load_settings(req.inventory_path, req.config_path, req.overrides())
    except KubestrapError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/plan")
def plan_bootstrap(req: BootstrapRequest):
    config, inventory = _load(req)
    return {"inventory": inventory.source, "forks": config.forks, "phases": bootstrap.plan(config, inventory)}


@router.post("/bootstrap")
def run_bootstrap(req: BootstrapRequest):
    config, inventory = _load(req)
    logger.info(f"[BOOTSTRAP] Inventory={req.inventory_path}, Forks={config.forks}")
    summary = bootstrap.run(config, inventory)
    return summary.to_dict()
