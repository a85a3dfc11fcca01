"""Shared fixtures for blind_ranker tests."""

import dataclasses
import json
import random
import tempfile
from pathlib import Path

import pytest
from PIL import Image, PngImagePlugin

from blind_ranker.config import RankerConfig
from blind_ranker.library import ImageLibrary
from blind_ranker.persistence import SyncSaver
from blind_ranker.service import RankingService
from blind_ranker.store import EntityStore


def make_png(path: Path, text: dict = None):
    """Write a tiny PNG with optional text chunks."""
    path.parent.mkdir(parents=True, exist_ok=True)
    info = PngImagePlugin.PngInfo()
    for key, value in (text or {}).items():
        info.add_text(key, value)
    Image.new("RGB", (4, 4), (128, 64, 32)).save(path, format="PNG", pnginfo=info)


def a1111_parameters(lora: str = None) -> dict:
    prompt = "a watercolor fox"
    if lora:
        prompt += f" <lora:{lora}:0.8>"
    return {"parameters": f"{prompt}\nSteps: 20, Sampler: Euler a"}


def write_ratings(path: Path, data: dict):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture
def workspace():
    """Temporary root with empty image and data folders."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "AI_images").mkdir()
        (root / "normal_images").mkdir()
        (root / "data").mkdir()
        yield root


@pytest.fixture
def config(workspace):
    return RankerConfig(
        name="Test Ranker",
        ai_images_dir=str(workspace / "AI_images"),
        normal_images_dir=str(workspace / "normal_images"),
        data_dir=str(workspace / "data"),
    )


@pytest.fixture
def make_service(config):
    """Factory loading the workspace into a service with synchronous saves."""
    services = []

    def factory(**overrides):
        cfg = dataclasses.replace(config, **overrides)
        library = ImageLibrary(cfg)
        store = EntityStore(library.load_all())
        service = RankingService(
            store, library, config=cfg, saver=SyncSaver(library.repository), rng=random.Random(7)
        )
        services.append(service)
        return service

    yield factory
    for service in services:
        service.close()


@pytest.fixture
def normal_subset(workspace):
    """Normal subset 'photos' with five unseeded JPEGs."""
    folder = workspace / "normal_images" / "photos"
    folder.mkdir()
    for i in range(1, 6):
        Image.new("RGB", (4, 4), (i * 40, 0, 0)).save(folder / f"img{i}.jpg")
    return folder


@pytest.fixture
def ai_subset(workspace):
    """AI subset 'styles' with two LoRAs and one image without a LoRA."""
    folder = workspace / "AI_images" / "styles"
    make_png(folder / "fox_a.png", a1111_parameters("inkwash"))
    make_png(folder / "fox_b.png", a1111_parameters("inkwash"))
    make_png(folder / "fox_c.png", a1111_parameters("pastel"))
    make_png(folder / "fox_d.png", a1111_parameters())
    make_png(folder / "plain.png")
    return folder
