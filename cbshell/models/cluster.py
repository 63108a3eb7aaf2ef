"""
Cluster connection models for the shell registry.
"""

from enum import Enum
from typing import Dict, List, Optional, Any
from urllib.parse import urlsplit
from pydantic import BaseModel, Field, field_validator

from ..config import get_settings


SUPPORTED_SCHEMES = ("couchbase", "couchbases", "http", "https")


class OperationKind(str, Enum):
    """Classes of operation, each bound to its own timeout."""
    DATA = "data"
    QUERY = "query"
    ANALYTICS = "analytics"
    SEARCH = "search"
    MANAGEMENT = "management"


def _default_timeout(kind: OperationKind) -> float:
    return getattr(get_settings().timeouts, f"{kind.value}_timeout")


class ClusterTimeouts(BaseModel):
    """Per-operation timeout policy of a cluster, in seconds."""
    data_timeout: float = Field(default_factory=lambda: _default_timeout(OperationKind.DATA), gt=0)
    query_timeout: float = Field(default_factory=lambda: _default_timeout(OperationKind.QUERY), gt=0)
    analytics_timeout: float = Field(default_factory=lambda: _default_timeout(OperationKind.ANALYTICS), gt=0)
    search_timeout: float = Field(default_factory=lambda: _default_timeout(OperationKind.SEARCH), gt=0)
    management_timeout: float = Field(default_factory=lambda: _default_timeout(OperationKind.MANAGEMENT), gt=0)

    def for_kind(self, kind: OperationKind) -> float:
        """Timeout that applies to an operation of the given kind."""
        return getattr(self, f"{OperationKind(kind).value}_timeout")


class TlsConfig(BaseModel):
    """TLS settings for a cluster connection."""
    enabled: bool = Field(default=False, description="Use the TLS ports of the cluster services")
    accept_all_certs: bool = Field(default=False, description="Skip certificate verification")
    cert_path: Optional[str] = Field(None, description="CA certificate bundle used for verification")


class ConnectionRecord(BaseModel):
    """One configured remote cluster."""
    identifier: str = Field(..., description="Unique cluster identifier")
    connstr: str = Field(..., description="Connection string, e.g. couchbase://host1,host2")
    username: str = Field(..., description="Username used to authenticate")
    password: str = Field(..., repr=False, description="Password used to authenticate")

    # Default selection, mutated by the "use" commands
    default_bucket: Optional[str] = Field(None, description="Bucket used when a command names none")
    default_scope: Optional[str] = Field(None, description="Scope used when a command names none")
    default_collection: Optional[str] = Field(None, description="Collection used when a command names none")

    cloud_organization: Optional[str] = Field(None, description="Associated cloud organization")
    cloud_managed: bool = Field(default=False, description="Cluster is managed by a cloud control plane")

    timeouts: ClusterTimeouts = Field(default_factory=ClusterTimeouts, description="Timeout policy")
    tls: TlsConfig = Field(default_factory=TlsConfig, description="TLS settings")

    @field_validator('identifier')
    @classmethod
    def validate_identifier(cls, v):
        """Identifiers are non-empty and free of whitespace and commas."""
        if not v or not v.strip():
            raise ValueError("Cluster identifier is required")
        if any(c.isspace() for c in v) or "," in v:
            raise ValueError("Cluster identifier must not contain whitespace or commas")
        return v

    @field_validator('connstr')
    @classmethod
    def validate_connstr(cls, v):
        """Validate connection string format."""
        if "://" not in v:
            v = f"couchbase://{v}"
        scheme = v.split("://", 1)[0].lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported connection string scheme: {scheme}")
        if not v.split("://", 1)[1].strip(" ,/"):
            raise ValueError("Connection string must name at least one host")
        return v

    @property
    def hostnames(self) -> List[str]:
        """Hosts named by the connection string, without ports or query options."""
        hosts = self.connstr.split("://", 1)[1].split("?", 1)[0].rstrip("/")
        result = []
        for host in hosts.split(","):
            host = host.strip()
            if not host:
                continue
            if host.startswith("["):
                result.append(host[:host.index("]") + 1])
            else:
                result.append(urlsplit(f"//{host}").hostname or host)
        return result

    @property
    def uses_tls(self) -> bool:
        """Whether services should be reached over their TLS ports."""
        scheme = self.connstr.split("://", 1)[0].lower()
        return self.tls.enabled or scheme in ("couchbases", "https")

    def summary(self) -> Dict[str, Any]:
        """Public fields for listing; never includes credentials."""
        return {
            "identifier": self.identifier,
            "connstr": self.connstr,
            "username": self.username,
            "cloud": self.cloud_managed,
            "cloud_organization": self.cloud_organization or "",
        }


class CloudOrganization(BaseModel):
    """Credentials for a cloud control plane organization."""
    identifier: str = Field(..., description="Unique organization identifier")
    access_key: str = Field(..., repr=False, description="API access key")
    secret_key: str = Field(..., repr=False, description="API secret key")
    default_project: Optional[str] = Field(None, description="Project selected when the organization becomes active")

    @field_validator('identifier')
    @classmethod
    def validate_identifier(cls, v):
        if not v or not v.strip():
            raise ValueError("Cloud organization identifier is required")
        return v


class ShellConfiguration(BaseModel):
    """Persisted registry contents."""
    version: int = Field(default=1, description="Configuration format version")
    active_cluster: Optional[str] = Field(None, description="Cluster active at startup")
    clusters: List[ConnectionRecord] = Field(default_factory=list)
    cloud_organizations: List[CloudOrganization] = Field(default_factory=list)


class ActiveSelection(BaseModel):
    """What commands use when they do not name a target."""
    cluster: Optional[str] = None
    username: Optional[str] = None
    bucket: Optional[str] = None
    scope: Optional[str] = None
    collection: Optional[str] = None
    cloud_organization: Optional[str] = None
    cloud: Optional[str] = None
    project: Optional[str] = None
