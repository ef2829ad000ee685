"""CLI entry point for stm32-configurator."""

import json as jsonmod
import logging
from pathlib import Path

import click

from stm32_configurator.cache import ResultCache, clear_snapshot, load_snapshot, save_snapshot
from stm32_configurator.devices import cpu_frequency, find_template, is_known_device, list_templates
from stm32_configurator.generator import ConfigGenerator, GenerationError, GenerationOptions
from stm32_configurator.integrity import list_openocd_scripts, validate_toolchain_integrity
from stm32_configurator.launch import backup_launch_configuration, save_launch_configuration
from stm32_configurator.orchestrator import AutoConfigOptions, AutoConfigurationService, validate_workspace
from stm32_configurator.probes import list_debug_probes
from stm32_configurator.project import analyze_project_structure, find_host_extension
from stm32_configurator.service import build_detection_service
from stm32_configurator.settings import (
    SettingsError,
    get_config_value,
    list_config,
    load_settings,
    set_config_value,
    unset_config_value,
)
from stm32_configurator.toolchain import TOOL_NAMES, DetectionOptions, DetectionStatus

_VARIANTS = ("basic", "live-watch", "no-reset", "trace", "rtt")


def _load_settings_or_exit(project_dir: Path):
    try:
        return load_settings(project_dir)
    except SettingsError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1)


def _detection_service(project_dir: Path, settings):
    """Detection service seeded with the snapshot saved in .stm32cfg/."""
    cache = ResultCache()
    saved = load_snapshot(project_dir)
    if saved is not None:
        cache.set_cached(saved)
    return build_detection_service(settings, cache=cache)


def _remember(project_dir: Path, snapshot) -> None:
    if snapshot is None:
        return
    if snapshot.openocd.from_cache and snapshot.arm_toolchain.from_cache:
        return
    try:
        save_snapshot(project_dir, snapshot)
    except OSError as e:
        click.echo(f"Warning: could not save detection cache: {e}", err=True)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose):
    """Detect STM32 toolchains and generate Cortex-Debug launch configurations."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _echo_result(result):
    label = "OpenOCD" if result.tool_name == "openocd" else "ARM toolchain"
    if result.status == DetectionStatus.SUCCESS:
        info = result.tool_info
        version = info.version if info else "Unknown"
        click.echo(f"[OK] {label}: {result.resolved_path} (version {version}, via {result.method})")
    else:
        click.echo(f"[!!] {label}: {result.error_message or result.status.value}")


@main.command()
@click.option("--tool", "tools", multiple=True, type=click.Choice(TOOL_NAMES), help="Only detect this tool.")
@click.option("--refresh", is_flag=True, help="Ignore results cached in .stm32cfg/.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def detect(tools, refresh, use_json):
    """Locate OpenOCD and the ARM GCC toolchain."""
    settings = _load_settings_or_exit(Path.cwd())
    service = _detection_service(Path.cwd(), settings)
    snapshot = service.detect(DetectionOptions(
        force_redetection=refresh,
        specific_tools=list(tools) or None,
    ))
    _remember(Path.cwd(), snapshot)
    names = list(tools) or list(TOOL_NAMES)

    if use_json:
        click.echo(jsonmod.dumps({name: snapshot.get(name).to_dict() for name in names}, indent=2))
    else:
        for name in names:
            _echo_result(snapshot.get(name))

    if any(snapshot.get(name).status != DetectionStatus.SUCCESS for name in names):
        raise SystemExit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--kind", type=click.Choice(["arm", "openocd"]), required=True, help="Toolchain type.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def validate(path, kind, use_json):
    """Check an installed toolchain for missing components."""
    report = validate_toolchain_integrity(path, kind)
    if use_json:
        click.echo(jsonmod.dumps(report.to_dict(), indent=2))
    else:
        click.echo(f"Completeness: {report.completeness_percent}%")
        for item in report.missing_components:
            click.echo(f"  [!!] missing: {item}")
        for issue in report.functional_issues:
            click.echo(f"  [!!] {issue}")
        for item in report.missing_optional:
            click.echo(f"  [--] optional, not installed: {item}")
    if not report.is_valid:
        raise SystemExit(1)


@main.command()
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def devices(use_json):
    """List supported STM32 device templates."""
    templates = list_templates()
    if use_json:
        click.echo(jsonmod.dumps([
            {
                "id": t.key,
                "name": t.name,
                "family": t.family_id,
                "core": t.core_name,
                "interface": t.default_interface_script,
                "target": t.default_target_script,
                "adapter_speed_khz": t.default_adapter_speed_khz,
                "flash_kb": t.memory_map.flash.size_kb,
                "ram_kb": t.memory_map.ram.size_kb,
                "cpu_frequency": cpu_frequency(t),
                "features": list(t.feature_flags),
            }
            for t in templates
        ], indent=2))
        return
    click.echo(f"{'ID':<12} {'Core':<12} {'Target':<16} {'Flash':>7} {'RAM':>6}  Features")
    click.echo(f"{'─' * 12} {'─' * 12} {'─' * 16} {'─' * 7} {'─' * 6}  {'─' * 20}")
    for t in templates:
        click.echo(
            f"{t.key:<12} {t.core_name:<12} {t.default_target_script:<16} "
            f"{t.memory_map.flash.size_kb:>6}K {t.memory_map.ram.size_kb:>5}K  {', '.join(t.feature_flags)}"
        )


@main.command()
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def probes(use_json):
    """List attached USB debug probes."""
    found = list_debug_probes()
    if use_json:
        click.echo(jsonmod.dumps([p.to_dict() for p in found], indent=2))
        return
    if not found:
        click.echo("No debug probes detected.")
        return
    for p in found:
        click.echo(f"  {p.device}  {p.name}  (interface/{p.interface_script})")


@main.command()
@click.option("--path", type=click.Path(exists=True, file_okay=False), help="Workspace to scan.")
@click.option("--refresh", is_flag=True, help="Ignore results cached in .stm32cfg/.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def scan(path, refresh, use_json):
    """Scan the environment and recommend next steps."""
    workspace = Path(path) if path else Path.cwd()
    settings = _load_settings_or_exit(workspace)
    service = AutoConfigurationService(_detection_service(workspace, settings), settings=settings)
    result = service.scan(workspace, DetectionOptions(force_redetection=refresh))
    _remember(workspace, result.snapshot)

    if use_json:
        click.echo(jsonmod.dumps(result.to_dict(), indent=2))
    else:
        click.echo(f"Status: {result.status}")
        if result.snapshot is not None:
            _echo_result(result.snapshot.openocd)
            _echo_result(result.snapshot.arm_toolchain)
        for name, report in result.integrity.items():
            click.echo(f"  {name} integrity: {report.completeness_percent}%")
        for probe in result.probes:
            click.echo(f"  Probe: {probe.name} on {probe.device}")
        for error in result.errors:
            click.echo(f"  Error: {error}")
        if result.recommendations:
            click.echo("\nRecommendations:")
            for rec in result.recommendations:
                click.echo(f"  [{rec.priority}] {rec.title}: {rec.description}")

    if result.status == "failed":
        raise SystemExit(1)


@main.command()
@click.argument("device")
@click.option("--variant", type=click.Choice(_VARIANTS), help="Use a predefined template variant.")
@click.option("--all", "all_variants", is_flag=True, help="Generate every variant the device supports.")
@click.option("--live-watch", is_flag=True, help="Enable Live Watch.")
@click.option("--swo", is_flag=True, help="Enable SWO tracing (Cortex-M4/M7).")
@click.option("--rtt", is_flag=True, help="Enable the RTT console.")
@click.option("--interface", type=str, help="Override the OpenOCD interface script.")
@click.option("--write", is_flag=True, help="Save into .vscode/launch.json.")
@click.option("--force", is_flag=True, help="Replace a same-named configuration instead of renaming.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def generate(device, variant, all_variants, live_watch, swo, rtt, interface, write, force, use_json):
    """Generate a Cortex-Debug launch configuration for DEVICE."""
    project_dir = Path.cwd()
    if not is_known_device(device):
        click.echo(
            f"Warning: {device} is not a known device; using the {find_template(device).name} template.",
            err=True,
        )
    settings = _load_settings_or_exit(project_dir)
    snapshot = _detection_service(project_dir, settings).detect()
    _remember(project_dir, snapshot)
    project = analyze_project_structure(project_dir)
    scripts = None
    if snapshot.openocd.status == DetectionStatus.SUCCESS:
        scripts = list_openocd_scripts(snapshot.openocd.resolved_path)

    generator = ConfigGenerator()
    try:
        if all_variants or variant:
            templates = generator.generate_templates(device, snapshot, project, scripts)
            if variant and variant not in templates:
                click.echo(f"Error: {device} does not support the {variant} variant.", err=True)
                raise SystemExit(1)
            results = list(templates.values()) if all_variants else [templates[variant]]
        else:
            options = GenerationOptions(
                enable_live_watch=live_watch,
                enable_swo=swo,
                enable_rtt=rtt,
                interface=interface,
            )
            results = [generator.generate(device, snapshot, project, scripts, options)]
    except GenerationError as e:
        if use_json:
            click.echo(jsonmod.dumps(e.to_dict()), err=True)
        else:
            click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1)

    if write:
        backup = backup_launch_configuration(project_dir)
        if backup:
            click.echo(f"Backed up launch.json to {backup.name}", err=True)
        for generated in reversed(results):
            name = save_launch_configuration(project_dir, generated.debug_config, force_overwrite=force)
            click.echo(f"Saved '{name}' to .vscode/launch.json", err=True)

    if use_json:
        payload = [g.to_dict() for g in results]
        click.echo(jsonmod.dumps(payload[0] if len(payload) == 1 else payload, indent=2))
    elif not write:
        configs = [g.debug_config.to_dict() for g in results]
        click.echo(jsonmod.dumps(configs[0] if len(configs) == 1 else configs, indent=4))
        for rec in results[0].recommendations:
            click.echo(f"  - {rec}", err=True)


@main.command()
@click.option("--device", type=str, help="Target device (default: inferred from the project).")
@click.option("--path", type=click.Path(exists=True, file_okay=False), help="Workspace to configure.")
@click.option("--force", is_flag=True, help="Replace a same-named configuration instead of renaming.")
@click.option("--no-backup", is_flag=True, help="Don't back up an existing launch.json.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def auto(device, path, force, no_backup, use_json):
    """Scan, generate and save a launch configuration in one step."""
    workspace = Path(path) if path else Path.cwd()
    settings = _load_settings_or_exit(workspace)
    service = AutoConfigurationService(_detection_service(workspace, settings), settings=settings)
    try:
        result = service.auto_configure(
            workspace,
            device,
            AutoConfigOptions(force_overwrite=force, backup=not no_backup),
        )
    except (GenerationError, RuntimeError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    _remember(workspace, result.scan.snapshot)

    if use_json:
        click.echo(jsonmod.dumps({
            "device": result.device,
            "saved_as": result.saved_name,
            "backup": str(result.backup_path) if result.backup_path else None,
            "scan": result.scan.to_dict(),
            "generated": result.generated.to_dict(),
        }, indent=2))
        return
    click.echo(f"Status: {result.scan.status}")
    for error in result.scan.errors:
        click.echo(f"  Error: {error}")
    if result.backup_path:
        click.echo(f"Backed up launch.json to {result.backup_path.name}")
    click.echo(f"Saved '{result.saved_name}' for {result.device} to .vscode/launch.json")
    click.echo(f"Confidence: {result.generated.metadata.confidence_percent}%")


@main.command("config")
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--list", "show_list", is_flag=True, help="Show all config values.")
@click.option("--unset", is_flag=True, help="Remove KEY.")
def config_cmd(key, value, show_list, unset):
    """Get or set stm32cfg.toml values (openocd.path, toolchain.path)."""
    project_dir = Path.cwd()
    try:
        if show_list:
            values = list_config(project_dir)
            if not values:
                click.echo("No configuration found.")
                return
            for k, v in sorted(values.items()):
                click.echo(f"  {k} = {v}")
            return

        if key and unset:
            if unset_config_value(project_dir, key):
                clear_snapshot(project_dir)
                click.echo(f"Removed {key}")
            else:
                click.echo(f"{key} is not set.")
            return

        if key and value:
            set_config_value(project_dir, key, value)
            clear_snapshot(project_dir)
            click.echo(f"Set {key} = {value}")
            return

        if key:
            val = get_config_value(project_dir, key)
            if val is None:
                click.echo(f"{key} is not set.")
            else:
                click.echo(f"{key} = {val}")
            return
    except (SettingsError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo("Usage: stm32cfg config <KEY> [VALUE] or stm32cfg config --list")


@main.command()
def doctor():
    """Check your environment for STM32 debugging."""
    project_dir = Path.cwd()
    settings = _load_settings_or_exit(project_dir)
    snapshot = build_detection_service(settings).detect()
    _remember(project_dir, snapshot)
    ok = True

    for name in TOOL_NAMES:
        result = snapshot.get(name)
        _echo_result(result)
        if result.status != DetectionStatus.SUCCESS:
            ok = False
            continue
        kind = "openocd" if name == "openocd" else "arm"
        report = validate_toolchain_integrity(result.resolved_path, kind)
        if report.is_valid:
            click.echo(f"     complete ({report.completeness_percent}%)")
        else:
            ok = False
            problems = report.missing_components + report.functional_issues
            click.echo(f"     {report.completeness_percent}% complete: {', '.join(problems)}")

    if find_host_extension():
        click.echo("[OK] Cortex-Debug extension installed")
    else:
        click.echo("[!!] Cortex-Debug extension not found (marus25.cortex-debug)")
        ok = False

    found = list_debug_probes()
    if found:
        click.echo("[OK] Debug probes found:")
        for p in found:
            click.echo(f"     {p.device}  {p.name}")
    else:
        click.echo("[--] No debug probes detected. Is a board connected via USB?")

    workspace = validate_workspace(project_dir)
    for issue in workspace["issues"]:
        click.echo(f"[--] {issue}")

    if not ok:
        raise SystemExit(1)
