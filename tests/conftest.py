"""
Pytest configuration and fixtures for the scan pipeline tests.

The fake SANE backend records every call so tests can check that the scanner
is always released, whichever step failed.
"""

import numpy as np
import pytest
from PIL import Image

from scansnap.acquisition import RasterPage
from scansnap.config import PipelineSettings, ScanConfiguration


class FakeDevice:
    def __init__(self, images=(), reject_option=None, fail_after=None, options=None,
                 fail_close=False):
        self.fail_close = fail_close
        self.images = list(images)
        self.reject_option = reject_option
        self.fail_after = fail_after
        self.options = options
        self.applied = {}
        self.calls = []

    def set_option(self, name, value):
        self.calls.append("set_option")
        if name == self.reject_option:
            raise ValueError(f"Invalid argument for {name}")
        if self.options is not None and name not in self.options:
            raise KeyError(name)
        self.applied[name] = value

    def scan_pages(self):
        for i, image in enumerate(self.images):
            if self.fail_after is not None and i >= self.fail_after:
                raise OSError("Error during device I/O")
            yield image

    def cancel(self):
        self.calls.append("cancel")

    def close(self):
        self.calls.append("close")
        if self.fail_close:
            raise RuntimeError("close failed")


class FakeBackend:
    def __init__(self, device=None, devices=("fujitsu:ScanSnap S1500:1234",),
                 fail_init=False, fail_list=False, fail_open=False):
        self.device = device if device is not None else FakeDevice()
        self.devices = list(devices)
        self.fail_init = fail_init
        self.fail_list = fail_list
        self.fail_open = fail_open
        self.opened = []
        self.calls = []

    def init(self):
        self.calls.append("init")
        if self.fail_init:
            raise RuntimeError("sane_init failed")

    def get_devices(self):
        self.calls.append("get_devices")
        if self.fail_list:
            raise RuntimeError("sane_get_devices failed")
        return self.devices

    def open(self, name):
        self.calls.append("open")
        if self.fail_open:
            raise RuntimeError("Device busy")
        self.opened.append(name)
        return self.device

    def exit(self):
        self.calls.append("exit")

    def count(self, call):
        return self.calls.count(call) + self.device.calls.count(call)


def make_image(width, height, color=(200, 30, 30), mode="RGB"):
    """Solid image with a dark band so pages are distinguishable."""
    img = Image.new(mode, (width, height), color if mode == "RGB" else 220)
    band = (0, 0, 0) if mode == "RGB" else 0
    for y in range(min(height, 4)):
        for x in range(width):
            img.putpixel((x, y), band)
    return img


def make_page(width, height, index=0, dpi=300, fill=128, channels=3):
    shape = (height, width, channels) if channels else (height, width)
    return RasterPage(index=index, image=np.full(shape, fill, dtype=np.uint8), dpi=dpi)


@pytest.fixture
def settings():
    return PipelineSettings()


@pytest.fixture
def config():
    return ScanConfiguration({"mode": "Color", "resolution": 300, "source": "ADF Duplex"})
