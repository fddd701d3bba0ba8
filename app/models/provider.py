from typing import List, Optional

from app.models.deployment import CamelModel


class CRDConfig(CamelModel):
    api_group: str
    api_version: str
    plural: str
    kind: str

    @property
    def group_version(self) -> str:
        return f"{self.api_group}/{self.api_version}"


class HelmRepo(CamelModel):
    name: str
    url: str


class HelmChart(CamelModel):
    name: str
    chart: str
    namespace: str
    create_namespace: bool = True
    version: Optional[str] = None


class InstallationStep(CamelModel):
    title: str
    command: str
    description: str


class InstallationStatus(CamelModel):
    installed: bool
    crd_found: Optional[bool] = None
    operator_running: Optional[bool] = None
    message: str = ""


class ProviderInfo(CamelModel):
    id: str
    name: str
    description: str
    default_namespace: str


class ProviderDetails(ProviderInfo):
    crd_config: CRDConfig
    helm_repos: List[HelmRepo]
    helm_charts: List[HelmChart]
    installation_steps: List[InstallationStep]


class RuntimeStatus(CamelModel):
    id: str
    name: str
    installed: bool
    crd_found: Optional[bool] = None
    operator_running: Optional[bool] = None
    message: str = ""
