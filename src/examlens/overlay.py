# src/examlens/overlay.py
from __future__ import annotations
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from PIL import Image, ImageDraw, ImageFont, ImageOps

from .models.schema import Box2D, ExamPage, GradingResult, Question
from .pipeline.images import ImageInput

logger = logging.getLogger(__name__)

NORMALIZED_SPACE = 1000.0
ANCHOR_GAP = 4  # px between the box's right edge and the mark

# status -> (foreground, background)
STATUS_COLORS = {
    "correct": ((22, 163, 74), (240, 253, 244)),
    "partial": ((202, 138, 4), (254, 252, 232)),
    "wrong": ((220, 38, 38), (254, 242, 242)),
}


@dataclass(frozen=True)
class AnnotationAnchor:
    """
    Where a question's mark goes on the rendered page, in pixels.
    (anchor_x, anchor_y) is the left edge of the mark, vertically centred on it.
    """

    pixel_x: float
    pixel_y: float
    pixel_width: float
    anchor_x: float
    anchor_y: float


def place_annotation(box_2d: Box2D, image_width: float, image_height: float) -> AnnotationAnchor:
    """
    Map a 0-1000 normalized box onto an image of the given pixel size.
    The annotation sits just right of the box, centred on the box's y.
    """
    x, y, width = box_2d[0], box_2d[1], box_2d[2]
    pixel_x = (x / NORMALIZED_SPACE) * image_width
    pixel_y = (y / NORMALIZED_SPACE) * image_height
    pixel_width = (width / NORMALIZED_SPACE) * image_width
    return AnnotationAnchor(
        pixel_x=pixel_x,
        pixel_y=pixel_y,
        pixel_width=pixel_width,
        anchor_x=pixel_x + pixel_width + ANCHOR_GAP,
        anchor_y=pixel_y,
    )


def score_label(q: Question) -> str:
    """
    '+max' for a correct answer, otherwise the (negative) points lost.
    """
    if q.status == "correct":
        return f"+{_fmt(q.score_max)}"
    return _fmt(q.score_obtained - q.score_max)


def _fmt(x: float) -> str:
    return str(int(x)) if float(x).is_integer() else f"{x:g}"


def _font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


def _draw_mark(draw: ImageDraw.ImageDraw, status: str, cx: float, cy: float, r: float, color) -> None:
    """
    Tick for correct, exclamation for partial, cross for wrong.
    """
    w = max(2, int(r / 3))
    if status == "correct":
        draw.line([(cx - r * 0.6, cy), (cx - r * 0.1, cy + r * 0.5), (cx + r * 0.7, cy - r * 0.6)], fill=color, width=w)
    elif status == "partial":
        draw.line([(cx, cy - r * 0.6), (cx, cy + r * 0.2)], fill=color, width=w)
        draw.ellipse([cx - w / 2, cy + r * 0.45, cx + w / 2, cy + r * 0.45 + w], fill=color)
    else:
        draw.line([(cx - r * 0.55, cy - r * 0.55), (cx + r * 0.55, cy + r * 0.55)], fill=color, width=w)
        draw.line([(cx - r * 0.55, cy + r * 0.55), (cx + r * 0.55, cy - r * 0.55)], fill=color, width=w)


def render_overlay(image: Image.Image, page: ExamPage) -> Image.Image:
    """
    Draw a status mark and a score badge next to every question of the page.
    Returns a new RGB image; the input is left untouched.
    """
    out = ImageOps.exif_transpose(image).convert("RGB")
    draw = ImageDraw.Draw(out)
    w, h = out.size
    r = max(8.0, min(w, h) / 40)
    font = _font(int(r * 1.2))

    for q in page.questions:
        a = place_annotation(q.box_2d, w, h)
        fg, bg = STATUS_COLORS[q.status]
        cx = a.anchor_x + r
        cy = a.anchor_y
        draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=bg, outline=fg, width=2)
        _draw_mark(draw, q.status, cx, cy, r, fg)

        if q.score_max > 0:
            label = score_label(q)
            left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
            tx = cx + r + ANCHOR_GAP
            ty = cy - (bottom - top) / 2 - top
            pad = 3
            draw.rectangle(
                [tx - pad, cy - (bottom - top) / 2 - pad, tx + (right - left) + pad, cy + (bottom - top) / 2 + pad],
                fill=bg,
                outline=fg,
            )
            draw.text((tx, ty), label, fill=fg, font=font)
    return out


def score_percent(result: GradingResult) -> int:
    """
    Total score as a rounded percentage of the maximum.
    """
    if result.total_max_score <= 0:
        return 0
    return round(result.total_score / result.total_max_score * 100)


def render_summary_header(image: Image.Image, result: GradingResult) -> Image.Image:
    """
    Prepend a white band with the total score, its percentage and the summary tags.
    """
    w, h = image.size
    size = max(12, w // 30)
    font = _font(size)
    small = _font(max(10, size * 2 // 3))
    lines = [
        (f"Score: {_fmt(result.total_score)} / {_fmt(result.total_max_score)} ({score_percent(result)}%)", font),
    ]
    if result.summary_tags:
        lines.append(("Tags: " + ", ".join(result.summary_tags), small))

    pad = size // 2
    scratch = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    heights = [scratch.textbbox((0, 0), text, font=fnt)[3] for text, fnt in lines]
    band = pad * (len(lines) + 1) + sum(heights)
    out = Image.new("RGB", (w, h + band), (255, 255, 255))
    out.paste(image.convert("RGB"), (0, band))
    draw = ImageDraw.Draw(out)
    y = pad
    for (text, fnt), lh in zip(lines, heights):
        draw.text((pad, y), text, fill=(17, 24, 39), font=fnt)
        y += lh + pad
    draw.line([(0, band - 1), (w, band - 1)], fill=(209, 213, 219), width=1)
    return out


def _open(source: ImageInput) -> Image.Image:
    if isinstance(source, bytes):
        return Image.open(io.BytesIO(source))
    return Image.open(source)


def export_report(
    images: Sequence[ImageInput],
    result: GradingResult,
    out_dir: Path,
    *,
    stem: str = "graded",
    summary: bool = True,
) -> List[Path]:
    """
    Write one annotated PNG per graded page into out_dir.
    With summary=True the first page carries the score header.
    Pages whose source image cannot be opened are skipped with a warning.
    """
    if len(images) != len(result.pages):
        raise ValueError(
            f"{len(images)} image(s) for {len(result.pages)} graded page(s)"
        )
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for n, (src, page) in enumerate(zip(images, result.pages), start=1):
        try:
            with _open(src) as im:
                rendered = render_overlay(im, page)
            if summary and n == 1:
                rendered = render_summary_header(rendered, result)
        except OSError as e:
            logger.warning("Skipping page %d: cannot open source image (%s)", n, e)
            continue
        target = out_dir / f"{stem}_page_{n:02d}.png"
        rendered.save(target, format="PNG")
        written.append(target)
    return written

