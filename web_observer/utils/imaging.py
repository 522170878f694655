from pathlib import Path
from typing import Any, Dict, List, Optional

from PIL import Image, ImageDraw, ImageFont


def annotate_screenshot(
    screenshot_path: Path,
    boxes: List[Dict[str, Any]],
    out_path: Optional[Path] = None,
) -> Path:
    """Draw a numbered rectangle for each bounding box ({x, y, width, height, label?})."""
    img = Image.open(screenshot_path).convert("RGB")
    draw = ImageDraw.Draw(img)

    try:
        font = ImageFont.load_default()
    except OSError:
        font = None

    for i, box in enumerate(boxes):
        x = int(box["x"])
        y = int(box["y"])
        w = int(box["width"])
        h = int(box["height"])

        draw.rectangle([x, y, x + w, y + h], outline=(255, 200, 0), width=2)
        draw.text((x + 2, y + 2), str(box.get("label", i)), fill=(255, 0, 0), font=font)

    target = Path(out_path or screenshot_path)
    img.save(target)
    return target
