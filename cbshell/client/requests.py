"""
Typed management requests sent to a cluster's management service.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import quote


def quote_segment(value: str) -> str:
    return quote(value, safe="")


@dataclass(frozen=True)
class ManagementRequest:
    """One call to the management REST API."""
    method: str
    path: str
    form: Dict[str, str] = field(default_factory=dict)
    description: str = ""

    @classmethod
    def get_buckets(cls) -> "ManagementRequest":
        return cls("GET", "/pools/default/buckets", description="get buckets")

    @classmethod
    def get_scopes(cls, bucket: str) -> "ManagementRequest":
        return cls("GET", f"/pools/default/buckets/{quote_segment(bucket)}/scopes",
                   description=f"get scopes of {bucket}")

    @classmethod
    def create_scope(cls, bucket: str, name: str) -> "ManagementRequest":
        return cls("POST", f"/pools/default/buckets/{quote_segment(bucket)}/scopes",
                   form={"name": name}, description=f"create scope {name}")

    @classmethod
    def drop_scope(cls, bucket: str, name: str) -> "ManagementRequest":
        return cls("DELETE", f"/pools/default/buckets/{quote_segment(bucket)}/scopes/{quote_segment(name)}",
                   description=f"drop scope {name}")

    @classmethod
    def create_collection(cls, bucket: str, scope: str, name: str,
                          max_expiry: Optional[int] = None) -> "ManagementRequest":
        form = {"name": name}
        if max_expiry is not None:
            form["maxTTL"] = str(max_expiry)
        return cls("POST", f"/pools/default/buckets/{quote_segment(bucket)}/scopes/{quote_segment(scope)}/collections",
                   form=form, description=f"create collection {name}")

    @classmethod
    def drop_collection(cls, bucket: str, scope: str, name: str) -> "ManagementRequest":
        return cls("DELETE",
                   f"/pools/default/buckets/{quote_segment(bucket)}/scopes/{quote_segment(scope)}/collections/{quote_segment(name)}",
                   description=f"drop collection {name}")

    @classmethod
    def get_users(cls) -> "ManagementRequest":
        return cls("GET", "/settings/rbac/users", description="get users")

    @classmethod
    def drop_user(cls, username: str) -> "ManagementRequest":
        return cls("DELETE", f"/settings/rbac/users/local/{quote_segment(username)}", description=f"drop user {username}")

    @classmethod
    def upsert_user(cls, username: str, roles: List[str], password: Optional[str] = None,
                    display_name: Optional[str] = None) -> "ManagementRequest":
        form = {"roles": ",".join(roles)}
        if password:
            form["password"] = password
        if display_name:
            form["name"] = display_name
        return cls("PUT", f"/settings/rbac/users/local/{quote_segment(username)}",
                   form=form, description=f"upsert user {username}")

    @classmethod
    def whoami(cls) -> "ManagementRequest":
        return cls("GET", "/whoami", description="whoami")

    @classmethod
    def get_nodes(cls) -> "ManagementRequest":
        return cls("GET", "/pools/default", description="get nodes")

    @classmethod
    def ping(cls) -> "ManagementRequest":
        return cls("GET", "/pools", description="ping")
