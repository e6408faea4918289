"""
Target group engine CLI: validate, list, up, destroy.
Run `lbtg setup` once; then use `lbtg validate`, `lbtg list`, `lbtg up`, `lbtg destroy`.
"""

import os
from pathlib import Path
import subprocess
import sys
from typing import Any

import jsonschema
import yaml

from lbtargetgroup.config import MANAGED_BY, TAG_MANAGED_BY, TAG_SET, TargetGroupSetConfig
from lbtargetgroup.loadbalancer import fields, plan
from lbtargetgroup.spec.validator import validate_declarations

CONFIG_DIR = ".lbtargetgroup"
CONFIG_FILENAME = "config.yaml"
PROGRAM_DIR = "lbtargetgroup"
DEFAULT_STACK_PREFIX = "dev"
# DescribeTags accepts at most 20 ARNs per call.
DESCRIBE_TAGS_BATCH = 20


def _project_root() -> Path:
    """Directory containing lbtargetgroup/Pulumi.yaml. Use cwd as default."""
    return Path.cwd()


def _config_path() -> Path:
    return _project_root() / CONFIG_DIR / CONFIG_FILENAME


def _load_config() -> dict[str, Any] | None:
    path = _config_path()
    if not path.exists():
        return None
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else None


def _save_config(backend_url: str, region: str, stack_prefix: str = DEFAULT_STACK_PREFIX) -> None:
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            {
                "backend_url": backend_url,
                "region": region,
                "stack_prefix": stack_prefix,
            },
            f,
            default_flow_style=False,
        )
    print(f"Configuration saved to {path}")


def _require_config() -> dict[str, Any]:
    config = _load_config()
    if not config or not config.get("backend_url") or not config.get("region"):
        print("Configuration missing or incomplete. Run: lbtg setup", file=sys.stderr)
        sys.exit(1)
    return config


def _run(cmd: list[str], env: dict[str, str] | None = None, check: bool = True) -> subprocess.CompletedProcess:
    full_env = os.environ.copy()
    if env:
        full_env.update(env)
    return subprocess.run(
        cmd,
        cwd=_project_root(),
        env=full_env,
        check=check,
    )


def _stack_name(set_name: str, config: dict[str, Any]) -> str:
    prefix = config.get("stack_prefix", DEFAULT_STACK_PREFIX)
    region = config["region"]
    return f"{prefix}.{set_name}.{region}"


def _require_program_dir() -> None:
    if not (_project_root() / PROGRAM_DIR / "Pulumi.yaml").exists():
        print(f"{PROGRAM_DIR}/Pulumi.yaml not found. Run this from the repository root.", file=sys.stderr)
        sys.exit(1)


# --- setup ---


def _cmd_setup() -> None:
    backend_url = os.environ.get("LBTG_BACKEND_URL", "").strip()
    if not backend_url:
        backend_url = input("Pulumi backend URL (e.g. s3://my-pulumi-state): ").strip()
    if not backend_url:
        print("Backend URL is required.", file=sys.stderr)
        sys.exit(1)

    region = os.environ.get("LBTG_REGION", "").strip()
    if not region:
        region = input("Default AWS region (e.g. us-west-2): ").strip()
    if not region:
        print("Region is required.", file=sys.stderr)
        sys.exit(1)

    stack_prefix = os.environ.get("LBTG_STACK_PREFIX", DEFAULT_STACK_PREFIX).strip() or DEFAULT_STACK_PREFIX
    _save_config(backend_url, region, stack_prefix)


# --- validate ---


def validate_file(path: Path) -> list[str]:
    """All problems in a target-groups.yaml: schema errors, then per target group checks."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        return [f"{path}: must contain a mapping"]
    try:
        validate_declarations(data)
    except jsonschema.ValidationError as e:
        return [e.message]
    except ValueError as e:
        return [str(e)]

    declarations = TargetGroupSetConfig.from_dict(data)
    problems = []
    for config in declarations.target_groups:
        props = config.to_props()
        if props["vpc_id"] is None and declarations.vpc is not None:
            # Resolved from spec.vpc at deploy time.
            props["vpc_id"] = "vpc-lookup"
        inputs = fields.normalize_inputs(props)
        for prop, reason in plan.check_inputs({}, inputs):
            problems.append(f"{config.key}.{prop}: {reason}")
    return problems


def _cmd_validate(path: str) -> None:
    if not Path(path).exists():
        print(f"File not found: {path}", file=sys.stderr)
        sys.exit(1)
    problems = validate_file(Path(path))
    if problems:
        for problem in problems:
            print(problem, file=sys.stderr)
        sys.exit(1)
    print(f"{path} is valid.")


# --- list ---


def _cmd_list(region: str | None) -> None:
    import boto3

    if not region:
        config = _load_config()
        region = config.get("region") if config else os.environ.get("AWS_REGION", "us-west-2")
    client = boto3.client("elbv2", region_name=region)

    arns: list[str] = []
    names: dict[str, str] = {}
    for page in client.get_paginator("describe_target_groups").paginate():
        for tg in page.get("TargetGroups", []):
            arns.append(tg["TargetGroupArn"])
            names[tg["TargetGroupArn"]] = tg["TargetGroupName"]

    sets: dict[str, list[str]] = {}
    for i in range(0, len(arns), DESCRIBE_TAGS_BATCH):
        resp = client.describe_tags(ResourceArns=arns[i:i + DESCRIBE_TAGS_BATCH])
        for description in resp.get("TagDescriptions", []):
            tags = {t["Key"]: t.get("Value", "") for t in description.get("Tags", [])}
            if tags.get(TAG_MANAGED_BY) != MANAGED_BY:
                continue
            sets.setdefault(tags.get(TAG_SET, "?"), []).append(description["ResourceArn"])

    if not sets:
        print("No lbtargetgroup-managed target groups found.")
        return
    for set_name in sorted(sets):
        print(f"\n{set_name}")
        for arn in sets[set_name]:
            print(f"  {names.get(arn, '?')}: {arn}")


# --- up ---


def _cmd_up(path_arg: str) -> None:
    config = _require_config()
    path = Path(path_arg)
    if not path.is_absolute():
        path = _project_root() / path
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        sys.exit(1)
    _require_program_dir()
    set_name = TargetGroupSetConfig.from_file(str(path)).name
    stack = _stack_name(set_name, config)
    env = {
        "TARGET_GROUPS_YAML_PATH": str(path.resolve()),
        "PULUMI_BACKEND_URL": config["backend_url"],
    }
    select = _run(["pulumi", "stack", "select", stack, "-C", PROGRAM_DIR], env=env, check=False)
    if select.returncode != 0:
        _run(["pulumi", "stack", "init", stack, "-C", PROGRAM_DIR], env=env)
    _run(["pulumi", "config", "set", "aws:region", config["region"], "-C", PROGRAM_DIR], env=env)
    print(f"Provisioning target groups for '{set_name}'...")
    _run(["pulumi", "up", "-C", PROGRAM_DIR, "-y"], env=env)


# --- destroy ---


def _cmd_destroy(set_name: str) -> None:
    config = _require_config()
    _require_program_dir()
    stack = _stack_name(set_name, config)
    env = {"PULUMI_BACKEND_URL": config["backend_url"]}
    select = _run(["pulumi", "stack", "select", stack, "-C", PROGRAM_DIR], env=env, check=False)
    if select.returncode != 0:
        print(f"No target groups found for '{set_name}' (stack {stack}).", file=sys.stderr)
        sys.exit(1)
    confirm = input(f"This will delete all target groups of '{set_name}'. Continue? [y/N]: ")
    if confirm.strip().lower() != "y":
        print("Cancelled.")
        sys.exit(0)
    _run(["pulumi", "destroy", "-C", PROGRAM_DIR, "-y"], env=env)
    print(f"Target groups of '{set_name}' removed.")


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Manage load balancer target groups declared in YAML.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("setup", help="One-time setup: state backend and region")
    validate_p = sub.add_parser("validate", help="Validate a target-groups.yaml without calling AWS")
    validate_p.add_argument("path", help="Path to target-groups.yaml")
    list_p = sub.add_parser("list", help="List engine-managed target groups by set")
    list_p.add_argument("--region", default=None)
    up_p = sub.add_parser("up", help="Create or update the target groups of a target-groups.yaml")
    up_p.add_argument("path", help="Path to target-groups.yaml")
    destroy_p = sub.add_parser("destroy", help="Delete all target groups of a set")
    destroy_p.add_argument("set_name", help="Set name (metadata.name)")
    args = parser.parse_args()

    if args.command == "setup":
        _cmd_setup()
    elif args.command == "validate":
        _cmd_validate(args.path)
    elif args.command == "list":
        _cmd_list(args.region)
    elif args.command == "up":
        _cmd_up(args.path)
    elif args.command == "destroy":
        _cmd_destroy(args.set_name)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
