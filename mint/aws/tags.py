"""Tag filters and tag sets for mint-managed resources."""

from __future__ import annotations

from typing import Any

from mint.constants import BootstrapStatus, Component, MintTag

type Filter = dict[str, Any]
type Tag = dict[str, str]


def tag_filter(key: str, *values: str) -> Filter:
    return {"Name": f"tag:{key}", "Values": list(values)}


def owner_filters(owner: str) -> list[Filter]:
    return [
        tag_filter(MintTag.MANAGED, "true"),
        tag_filter(MintTag.OWNER, owner),
    ]


def owner_vm_filters(owner: str, vm_name: str, component: Component | None = None) -> list[Filter]:
    """Filters selecting one VM's resources, optionally of a single component."""
    filters = [*owner_filters(owner), tag_filter(MintTag.VM, vm_name)]
    if component is not None:
        filters.append(tag_filter(MintTag.COMPONENT, component))
    return filters


def tags_to_dict(tags: list[Tag] | None) -> dict[str, str]:
    return {t["Key"]: t["Value"] for t in tags or ()}


def instance_tags(
    *,
    owner: str,
    owner_arn: str,
    vm_name: str,
    root_volume_gb: int,
    project_volume_gb: int | None = None,
) -> list[Tag]:
    """Tags applied to a newly launched instance.

    The instance starts with ``mint:bootstrap=pending``; the provisioning
    script flips it to ``complete`` or ``failed``.
    """
    tags = {
        MintTag.NAME: f"mint/{owner}/{vm_name}",
        MintTag.MANAGED: "true",
        MintTag.COMPONENT: Component.INSTANCE,
        MintTag.OWNER: owner,
        MintTag.OWNER_ARN: owner_arn,
        MintTag.VM: vm_name,
        MintTag.BOOTSTRAP: BootstrapStatus.PENDING,
        MintTag.ROOT_VOLUME_GB: str(root_volume_gb),
    }
    if project_volume_gb is not None:
        tags[MintTag.PROJECT_VOLUME_GB] = str(project_volume_gb)
    return [{"Key": str(k), "Value": str(v)} for k, v in tags.items()]
