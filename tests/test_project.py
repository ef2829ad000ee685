"""Tests for workspace inspection."""

import json

from stm32_configurator.project import (
    DEFAULT_EXECUTABLE,
    analyze_project_structure,
    find_host_extension,
    infer_device,
    scan_existing_configuration,
    summarize_launch_config,
)
from stm32_configurator.settings import ToolchainSettings


def _write(path, text=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestProjectStructure:
    def test_makefile_project(self, tmp_path):
        _write(tmp_path / "Makefile", "all:\n")
        _write(tmp_path / "Core" / "Src" / "main.c", "int main(void) { return 0; }\n")
        _write(tmp_path / "Core" / "Inc" / "main.h")
        (tmp_path / "build").mkdir()
        analysis = analyze_project_structure(tmp_path)
        assert analysis.project_type == "makefile"
        assert analysis.build_task == "make"
        assert analysis.source_files.has_main
        assert analysis.source_files.source_count == 1
        assert analysis.source_files.header_count == 1
        assert analysis.executable_prediction.build_output_dirs == ["build"]
        assert analysis.executable_prediction.default_path == "${workspaceFolder}/build/${workspaceFolderBasename}.elf"

    def test_project_type_priority(self, tmp_path):
        _write(tmp_path / "Makefile")
        _write(tmp_path / "CMakeLists.txt")
        assert analyze_project_structure(tmp_path).project_type == "cmake"
        _write(tmp_path / "board.ioc")
        assert analyze_project_structure(tmp_path).project_type == "stm32cube"
        _write(tmp_path / "platformio.ini")
        assert analyze_project_structure(tmp_path).project_type == "platformio"

    def test_cmake_build_task(self, tmp_path):
        _write(tmp_path / "CMakeLists.txt")
        assert analyze_project_structure(tmp_path).build_task == "cmake build"

    def test_empty_dir(self, tmp_path):
        analysis = analyze_project_structure(tmp_path)
        assert analysis.project_type == "unknown"
        assert analysis.build_task is None
        assert analysis.executable_prediction.default_path == DEFAULT_EXECUTABLE

    def test_missing_dir(self, tmp_path):
        assert analyze_project_structure(tmp_path / "nope").project_type == "unknown"

    def test_hidden_dirs_skipped(self, tmp_path):
        _write(tmp_path / ".git" / "hooks" / "main.c")
        assert analyze_project_structure(tmp_path).source_files.source_count == 0


class TestInferDevice:
    def test_define_in_header(self, tmp_path):
        _write(tmp_path / "Inc" / "board.h", "#define STM32F407VG\n")
        inference = infer_device(tmp_path)
        assert inference.likely_device == "STM32F407VG"
        assert inference.device_family == "STM32F4"
        assert inference.confidence == 10

    def test_confidence_grows_per_file(self, tmp_path):
        for i in range(6):
            _write(tmp_path / f"file{i}.c", "/* target: stm32h743zi */\n")
        inference = infer_device(tmp_path)
        assert inference.likely_device == "STM32H743ZI"
        assert inference.confidence == 60
        assert len(inference.evidence_files) == 6

    def test_short_matches_ignored(self, tmp_path):
        _write(tmp_path / "main.c", "#include \"stm32f4xx.h\"\n")
        assert infer_device(tmp_path).likely_device is None

    def test_depth_limited(self, tmp_path):
        _write(tmp_path / "a" / "b" / "c" / "d" / "board.h", "#define STM32F407VG\n")
        assert infer_device(tmp_path).likely_device is None

    def test_other_extensions_ignored(self, tmp_path):
        _write(tmp_path / "notes.md", "STM32F407VG\n")
        assert infer_device(tmp_path).confidence == 0


class TestExistingConfiguration:
    def test_no_workspace(self):
        state = scan_existing_configuration(None)
        assert state.workspace.has_workspace is False
        assert state.launch_config.exists is False

    def test_workspace_without_launch(self, tmp_path):
        (tmp_path / ".vscode").mkdir()
        state = scan_existing_configuration(tmp_path, ToolchainSettings(openocd_path="/usr/bin/openocd"))
        assert state.workspace.has_vscode_folder
        assert state.launch_config.exists is False
        assert state.settings.openocd_path == "/usr/bin/openocd"

    def test_launch_with_stm32_config(self, tmp_path):
        launch = {
            "version": "0.2.0",
            "configurations": [
                {"name": "Python", "type": "python", "request": "launch"},
                {
                    "name": "Debug", "type": "cortex-debug", "request": "launch",
                    "executable": "fw.elf", "device": "STM32F407VG",
                    "liveWatch": {"enabled": True},
                },
            ],
        }
        _write(tmp_path / ".vscode" / "launch.json", json.dumps(launch))
        state = scan_existing_configuration(tmp_path)
        assert state.launch_config.exists
        assert state.launch_config.config_count == 2
        assert state.launch_config.has_stm32_configs
        stm32 = state.launch_config.configs[1]
        assert stm32.has_live_watch
        assert stm32.missing_fields == ["servertype"]
        assert stm32.is_complete is False

    def test_invalid_launch_json(self, tmp_path):
        _write(tmp_path / ".vscode" / "launch.json", "{ not json")
        state = scan_existing_configuration(tmp_path)
        assert state.launch_config.exists
        assert state.launch_config.config_count == 0

    def test_summary_of_non_stm32(self):
        summary = summarize_launch_config({"type": "cppdbg"})
        assert summary.name == "Unnamed"
        assert summary.is_stm32 is False
        assert summary.missing_fields == ["name", "request", "executable"]


class TestHostExtension:
    def test_newest_version_first(self, tmp_path):
        (tmp_path / "marus25.cortex-debug-1.10.0").mkdir()
        (tmp_path / "marus25.cortex-debug-1.12.1").mkdir()
        found = find_host_extension(search_dirs=[str(tmp_path)])
        assert found.endswith("marus25.cortex-debug-1.12.1")

    def test_not_installed(self, tmp_path):
        assert find_host_extension(search_dirs=[str(tmp_path)]) is None
