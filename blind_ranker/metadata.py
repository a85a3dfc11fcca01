"""
Extract the LoRA group of a generated PNG from its embedded text chunks.

Supports A1111 style ``parameters`` text and ComfyUI ``prompt`` / ``workflow``
JSON graphs.
"""

import json
import logging
import re
from pathlib import PurePosixPath
from typing import Optional

from PIL import Image

from .models import NO_GROUP

logger = logging.getLogger(__name__)

LORA_TAG = re.compile(r"<lora:([^:]+):([^>]+)>")
MODEL_SUFFIX = re.compile(r"\.(safetensors|ckpt|pt|bin)$", re.IGNORECASE)


def read_text_chunks(path) -> dict:
    """Return the PNG text chunks of an image as a dict."""
    with Image.open(path) as img:
        img.load()
        chunks = getattr(img, "text", None)
        if chunks is None:
            chunks = {k: v for k, v in img.info.items() if isinstance(v, str)}
        return dict(chunks)


def lora_name_from_path(lora_path: str) -> str:
    """Strip folders and the model file extension from a LoRA path."""
    if not isinstance(lora_path, str):
        return ""
    name = PurePosixPath(lora_path.replace("\\", "/")).name
    return MODEL_SUFFIX.sub("", name).strip()


def lora_from_node(node: dict) -> str:
    inputs = node.get("inputs") or {}
    lora_name = inputs.get("lora_name") if isinstance(inputs, dict) else None
    if isinstance(lora_name, str):
        return lora_name_from_path(lora_name)
    if isinstance(lora_name, list) and lora_name and isinstance(lora_name[0], str):
        return lora_name_from_path(lora_name[0])
    widgets = node.get("widgets_values")
    if isinstance(widgets, list) and widgets and isinstance(widgets[0], str):
        return lora_name_from_path(widgets[0])
    return ""


def _first_lora(nodes) -> str:
    for node in nodes:
        if isinstance(node, dict) and node.get("class_type") == "LoraLoader":
            name = lora_from_node(node)
            if name:
                return name
    return ""


def lora_from_prompt(prompt) -> str:
    """LoRA from a ComfyUI API prompt (nodes keyed by id)."""
    if not isinstance(prompt, dict):
        return ""
    return _first_lora(prompt.values())


def lora_from_workflow(workflow) -> str:
    """LoRA from a ComfyUI saved workflow (``nodes`` list)."""
    if not isinstance(workflow, dict) or not isinstance(workflow.get("nodes"), list):
        return ""
    return _first_lora(workflow["nodes"])


def lora_from_parameters(text: str) -> str:
    match = LORA_TAG.search(text)
    if not match:
        return NO_GROUP
    name = match.group(1).strip()
    strength = match.group(2)
    return f"{name}:{strength}" if strength else name


def _parse_json(text: str) -> Optional[object]:
    try:
        return json.loads(text)
    except ValueError:
        return None


def group_from_chunks(chunks: dict) -> str:
    """
    Work out the group string from PNG text chunks.

    Returns:
        ``"name:strength"`` for A1111 images, the LoRA file name for ComfyUI
        images, ``"NONE"`` when generation parameters exist without a LoRA,
        or ``""`` when nothing is known.
    """
    parameters = chunks.get("parameters")
    if parameters:
        return lora_from_parameters(parameters)

    prompt = chunks.get("prompt")
    if prompt:
        name = lora_from_prompt(_parse_json(prompt))
        if name:
            return name

    workflow = chunks.get("workflow")
    if workflow:
        name = lora_from_workflow(_parse_json(workflow))
        if name:
            return name

    return ""


def extract_group(path) -> str:
    """Group string for the image at ``path``; ``""`` when unreadable."""
    try:
        return group_from_chunks(read_text_chunks(path))
    except FileNotFoundError:
        return ""
    except (OSError, ValueError) as e:
        # ValueError: oversized compressed text chunks
        logger.error("Error parsing PNG %s: %s", path, e)
        return ""
