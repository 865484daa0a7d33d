"""
Tests for the device registries
"""

import subprocess
from unittest.mock import patch

import pytest

from vidip.registry import DeviceRegistry, MemoryRegistry, SystemRegistry, parse_card_label


V4L2_CTL_OUTPUT = """Driver Info:
\tDriver name      : v4l2 loopback
\tCard type        : v4l2-ip-camera-2
\tBus info         : platform:v4l2loopback-002
\tDriver version   : 6.8.12
\tCapabilities     : 0x85200002
Priority: 2
Video output: 0 (loopback in)
"""


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestParseCardLabel:
    """Tests for reading the card label out of v4l2-ctl output"""

    def test_parses_card_type(self):
        assert parse_card_label(V4L2_CTL_OUTPUT) == "v4l2-ip-camera-2"

    def test_strips_whitespace(self):
        assert parse_card_label("Card type :   Integrated Camera  \n") == "Integrated Camera"

    def test_missing_card_type(self):
        assert parse_card_label("Driver name : uvcvideo\n") is None

    def test_empty_output(self):
        assert parse_card_label("") is None


class TestSystemRegistryDevices:
    """Tests for device node discovery"""

    def test_device_path(self):
        assert SystemRegistry().device_path(4) == "/dev/video4"

    def test_device_indices_sorted_numerically(self):
        paths = ["/dev/video10", "/dev/video2", "/dev/video0"]
        with patch("vidip.registry.glob.glob", return_value=paths):
            assert SystemRegistry().device_indices() == [0, 2, 10]

    def test_device_indices_ignores_other_nodes(self):
        paths = ["/dev/video0", "/dev/video-codec", "/dev/videoX1"]
        with patch("vidip.registry.glob.glob", return_value=paths):
            assert SystemRegistry().device_indices() == [0]

    def test_device_indices_on_real_directory(self, tmp_path):
        for name in ("video0", "video3", "video12", "vbi0"):
            (tmp_path / name).touch()
        registry = SystemRegistry(dev_dir=str(tmp_path))
        assert registry.device_indices() == [0, 3, 12]
        assert registry.device_exists(3)
        assert not registry.device_exists(4)

    def test_module_loaded(self, tmp_path):
        (tmp_path / "v4l2loopback").mkdir()
        assert SystemRegistry(sys_module_dir=str(tmp_path)).is_module_loaded()

    def test_module_not_loaded(self, tmp_path):
        assert not SystemRegistry(sys_module_dir=str(tmp_path)).is_module_loaded()

    def test_privileged(self):
        with patch("vidip.registry.os.geteuid", return_value=0, create=True):
            assert SystemRegistry().is_privileged()
        with patch("vidip.registry.os.geteuid", return_value=1000, create=True):
            assert not SystemRegistry().is_privileged()


class TestSystemRegistryCommands:
    """Tests for the external commands the registry runs"""

    def test_card_label_runs_v4l2_ctl(self):
        with patch("vidip.registry.subprocess.run", return_value=completed(stdout=V4L2_CTL_OUTPUT)) as run:
            assert SystemRegistry().card_label(2) == "v4l2-ip-camera-2"
        assert run.call_args[0][0] == ["v4l2-ctl", "-d", "/dev/video2", "--all"]

    def test_card_label_command_failure(self):
        with patch("vidip.registry.subprocess.run", return_value=completed(returncode=1, stderr="No such device")):
            assert SystemRegistry().card_label(2) is None

    def test_card_label_tool_missing(self):
        with patch("vidip.registry.subprocess.run", side_effect=FileNotFoundError("v4l2-ctl")):
            assert SystemRegistry().card_label(2) is None

    @pytest.mark.parametrize("returncode,expected", [(0, True), (1, False)])
    def test_is_in_use_uses_fuser(self, returncode, expected):
        with patch("vidip.registry.subprocess.run", return_value=completed(returncode=returncode)) as run:
            assert SystemRegistry().is_in_use(3) is expected
        assert run.call_args[0][0] == ["fuser", "/dev/video3"]

    def test_load_module_command(self):
        with patch("vidip.registry.subprocess.run", return_value=completed()) as run:
            ok = SystemRegistry().load_module([2, 5], ["cam-2", "cam-5"], exclusive_caps=True)
        assert ok is True
        assert run.call_args[0][0] == [
            "modprobe", "v4l2loopback",
            "video_nr=2,5",
            "card_label=cam-2,cam-5",
            "exclusive_caps=1",
        ]

    def test_load_module_without_exclusive_caps(self):
        with patch("vidip.registry.subprocess.run", return_value=completed()) as run:
            SystemRegistry().load_module([0], ["cam-0"], exclusive_caps=False)
        assert run.call_args[0][0][-1] == "exclusive_caps=0"

    def test_load_module_failure(self):
        with patch("vidip.registry.subprocess.run", return_value=completed(returncode=1, stderr="FATAL")):
            assert SystemRegistry().load_module([0], ["cam-0"]) is False

    def test_unload_module_command(self):
        with patch("vidip.registry.subprocess.run", return_value=completed()) as run:
            assert SystemRegistry().unload_module() is True
        assert run.call_args[0][0] == ["modprobe", "-r", "v4l2loopback"]

    def test_custom_module_name(self):
        with patch("vidip.registry.subprocess.run", return_value=completed()) as run:
            SystemRegistry(module_name="v4l2loopback_dc").unload_module()
        assert run.call_args[0][0] == ["modprobe", "-r", "v4l2loopback_dc"]


class TestMemoryRegistry:
    """Tests for the in-memory registry"""

    def test_loaded_defaults_to_having_loopback_devices(self):
        assert MemoryRegistry(nodes={0: "a"}, loopback={0}).is_module_loaded()
        assert not MemoryRegistry(nodes={0: "a"}).is_module_loaded()

    def test_load_creates_nodes(self):
        registry = MemoryRegistry()
        assert registry.load_module([1, 4], ["a-1", "a-4"])
        assert registry.device_indices() == [1, 4]
        assert registry.card_label(4) == "a-4"

    def test_load_while_loaded_fails(self):
        registry = MemoryRegistry(nodes={0: "a-0"}, loopback={0})
        assert registry.load_module([1], ["a-1"]) is False

    def test_unload_keeps_foreign_nodes(self):
        registry = MemoryRegistry(nodes={0: "webcam", 1: "a-1"}, loopback={1}, in_use={1})
        assert registry.unload_module()
        assert registry.device_indices() == [0]
        assert registry.in_use == set()

    def test_unload_when_not_loaded_fails(self):
        assert MemoryRegistry().unload_module() is False

    def test_records_calls(self):
        registry = MemoryRegistry()
        registry.load_module([0], ["a-0"], exclusive_caps=False)
        registry.unload_module()
        assert registry.calls == [("load", [0], ["a-0"], False), ("unload",)]

    def test_in_use(self):
        registry = MemoryRegistry(nodes={0: "a"}, in_use={0})
        assert registry.is_in_use(0)
        assert not registry.is_in_use(1)

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            DeviceRegistry()
