"""Tests for GPU offload selection."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from sentient.utils.hardware import HardwareBackend, detect_hardware, resolve_gpu_offload


def tools(*available):
    """Pretend only the named probe commands are installed."""
    return lambda command: f"/usr/bin/{command}" if command in available else None


class TestDetectHardware:
    @patch("subprocess.run", return_value=MagicMock(returncode=0))
    def test_cuda_wins(self, mock_run):
        with patch("shutil.which", side_effect=tools("nvidia-smi", "rocm-smi")):
            assert detect_hardware() == HardwareBackend.CUDA
        mock_run.assert_called_once_with(["nvidia-smi"], capture_output=True, timeout=2, check=False)

    @patch("subprocess.run", return_value=MagicMock(returncode=0))
    def test_rocm_when_no_nvidia_tool(self, mock_run):
        with patch("shutil.which", side_effect=tools("rocm-smi")):
            assert detect_hardware() == HardwareBackend.ROCM

    @patch("subprocess.run", return_value=MagicMock(returncode=9))
    def test_failing_tool_means_cpu(self, mock_run):
        with patch("shutil.which", side_effect=tools("nvidia-smi")):
            assert detect_hardware() == HardwareBackend.CPU

    @patch("subprocess.run", side_effect=subprocess.TimeoutExpired("nvidia-smi", 2))
    def test_timeout_means_cpu(self, mock_run):
        with patch("shutil.which", side_effect=tools("nvidia-smi")):
            assert detect_hardware() == HardwareBackend.CPU

    @patch("subprocess.run")
    def test_nothing_installed(self, mock_run):
        with patch("shutil.which", return_value=None):
            assert detect_hardware() == HardwareBackend.CPU
        mock_run.assert_not_called()


class TestResolveGpuOffload:
    @pytest.mark.parametrize(
        "configured,layers,expected",
        [
            ("cpu", 35, (HardwareBackend.CPU, 0)),
            ("cuda", 35, (HardwareBackend.CUDA, 35)),
            ("rocm", 12, (HardwareBackend.ROCM, 12)),
            ("cuda", 0, (HardwareBackend.CUDA, 0)),
        ],
    )
    def test_explicit(self, configured, layers, expected):
        assert resolve_gpu_offload(configured, layers) == expected

    @patch("sentient.utils.hardware.detect_hardware", return_value=HardwareBackend.CPU)
    def test_auto_without_gpu(self, mock_detect):
        assert resolve_gpu_offload("auto", 35) == (HardwareBackend.CPU, 0)
        mock_detect.assert_called_once()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            resolve_gpu_offload("tpu", 1)
