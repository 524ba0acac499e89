import argparse
import json
from dataclasses import asdict
from pathlib import Path

import fitz

from certificate_content import CertificateCategory
from certificate_errors import TemplateNotFoundError
from certificate_overlay import LayoutConfig, layout_for
from template_loader import LocalTemplateSource, template_file_name


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Check a certificate template against its layout: list fixed elements "
        "in design coordinates and report whether the body area is clear."
    )
    parser.add_argument(
        "--category",
        required=True,
        choices=[c.value for c in CertificateCategory],
        help="Category whose template and layout are checked.",
    )
    parser.add_argument("--templates-dir", default="templates", help="Local template directory.")
    parser.add_argument("--page", type=int, default=0, help="Zero-based page index.")
    parser.add_argument("--output-json", help="Optional JSON report path.")
    parser.add_argument(
        "--annotate",
        help="Optional output PDF with the body area and every fixed element outlined.",
    )
    return parser.parse_args(argv)


def iter_spans(page: fitz.Page):
    data = page.get_text("dict")
    for block in data.get("blocks", []):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                yield span


def extract_fixed_elements(page: fitz.Page) -> list[dict]:
    """Text spans and drawn shapes on the page, in design (top-left) coordinates."""
    items: list[dict] = []
    for span in iter_spans(page):
        text = (span.get("text") or "").strip()
        if not text:
            continue
        items.append({"kind": "text", "text": text, "bbox": list(span.get("bbox", [0, 0, 0, 0]))})
    for drawing in page.get_drawings():
        rect = drawing.get("rect")
        if rect is None:
            continue
        items.append({"kind": "drawing", "text": "", "bbox": [rect.x0, rect.y0, rect.x1, rect.y1]})
    items.sort(key=lambda item: (item["bbox"][1], item["bbox"][0]))
    return items


def body_area(layout: LayoutConfig) -> tuple[float, float, float, float]:
    # From the top of the salutation's ascenders down to the guard line.
    top = layout.anchor_y - layout.font_sizes.salutation
    return (layout.body_x, top, layout.body_x + layout.body_width, layout.max_body_y)


def _overlaps(bbox: list[float], area: tuple[float, float, float, float]) -> bool:
    x0, y0, x1, y1 = bbox
    ax0, ay0, ax1, ay1 = area
    return x0 < ax1 and x1 > ax0 and y0 < ay1 and y1 > ay0


def check_layout(items: list[dict], layout: LayoutConfig) -> dict:
    """Report fixed elements inside the body area and the clearance below it.

    clearance is the gap between max_body_y and the nearest fixed element that
    starts below it (the doctor block on a well-formed template).
    """
    area = body_area(layout)
    intrusions = [item for item in items if _overlaps(item["bbox"], area)]
    below = [item for item in items if item["bbox"][1] >= layout.max_body_y]
    nearest = min(below, key=lambda item: item["bbox"][1], default=None)
    return {
        "body_area": list(area),
        "intrusions": intrusions,
        "next_element": nearest,
        "clearance": (nearest["bbox"][1] - layout.max_body_y) if nearest else None,
        "ok": not intrusions,
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    category = CertificateCategory(args.category)
    layout = layout_for(category)
    file_name = template_file_name(category)

    try:
        template_bytes = LocalTemplateSource(args.templates_dir).fetch(file_name)
    except TemplateNotFoundError as exc:
        print(f"[FAIL] {exc.code}: {exc}")
        return 1

    with fitz.open(stream=template_bytes, filetype="pdf") as doc:
        if args.page < 0 or args.page >= len(doc):
            print(f"[FAIL] Page {args.page} out of range. PDF has {len(doc)} page(s).")
            return 1
        page = doc[args.page]

        items = extract_fixed_elements(page)
        report = check_layout(items, layout)

        print(f"Template: {file_name}")
        print(f"Page: {args.page}  Size: {page.rect.width:.2f} x {page.rect.height:.2f} points")
        for idx, item in enumerate(items, start=1):
            x0, y0, x1, y1 = item["bbox"]
            print(f"{idx:03d} | {item['kind']:<7} | '{item['text']}' | bbox=({x0:.2f},{y0:.2f},{x1:.2f},{y1:.2f})")
        for item in report["intrusions"]:
            print(f"[WARN] Fixed element inside body area: {item['kind']} '{item['text']}' at y={item['bbox'][1]:.2f}")
        if report["clearance"] is not None:
            print(f"Clearance below max_body_y ({layout.max_body_y}): {report['clearance']:.2f} pt")
        print("[OK] Body area is clear." if report["ok"] else "[FAIL] Body area overlaps the template design.")

        if args.output_json:
            output_path = Path(args.output_json)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            payload = {"template": file_name, "page": args.page, "layout": asdict(layout), "items": items, **report}
            output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            print(f"Wrote JSON: {output_path}")

        if args.annotate:
            annot_path = Path(args.annotate)
            annot_path.parent.mkdir(parents=True, exist_ok=True)
            page.draw_rect(fitz.Rect(report["body_area"]), color=(0, 0, 1), width=0.7)
            for item in items:
                page.draw_rect(fitz.Rect(item["bbox"]), color=(1, 0, 0), width=0.5)
            doc.save(annot_path)
            print(f"Wrote annotated PDF: {annot_path}")

    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
