"""
Configuration settings for the canary reconciler.
"""
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Application
    APP_NAME: str = Field(default="canary-reconciler", description="Application name")

    # Kubernetes Configuration
    K8S_CONTEXT: Optional[str] = Field(default=None, description="Kubernetes context")
    K8S_IN_CLUSTER: bool = Field(default=False, description="Running in cluster")

    # Canary resources
    CANARY_API_VERSION: str = Field(default="flagger.app/v1beta1", description="Canary CRD apiVersion")
    SELECTOR_LABELS: str = Field(
        default="app,name,app.kubernetes.io/name",
        description="Comma separated label keys tried, in order, as the workload selector",
    )
    PROGRESS_DEADLINE_SECONDS: int = Field(default=600, description="Default progress deadline")
    STATUS_UPDATE_ATTEMPTS: int = Field(
        default=5, ge=3, le=5, description="Read-modify-write attempts for canary status updates"
    )

    # OAM
    COMPONENT_LABEL: str = Field(default="app.oam.dev/component", description="Workload component label")
    REVISION_COMPONENT_LABEL: str = Field(
        default="controller.oam.dev/component", description="ControllerRevision component label"
    )

    # Workload specifics
    SCALE_TO_ZERO_NODE_SELECTOR: str = Field(
        default="flagger.app/scale-to-zero", description="Node selector key used to park daemon sets"
    )
    TRAFFIC_SPLIT_API_VERSION: str = Field(
        default="split.smi-spec.io/v1alpha2", description="SMI TrafficSplit apiVersion"
    )

    # Service Configuration
    LOG_LEVEL: str = Field(default="info", description="Log level: info|debug|warning")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def selector_labels(self) -> List[str]:
        return [label.strip() for label in self.SELECTOR_LABELS.split(",") if label.strip()]


# Global settings instance
settings = Settings()
