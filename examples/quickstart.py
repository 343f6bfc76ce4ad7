"""
atlas-packer Quick Start Example

Packs a few triangles cut from two small generated "dice" textures into a
single sheet and writes the sheet plus the remapped UVs.
"""

from pathlib import Path

from PIL import Image, ImageDraw

from atlas_packer import TexturePlacerConfig, pack_polygons

OUTPUT = Path("output/quickstart")
ASSETS = OUTPUT / "assets"
ASSETS.mkdir(parents=True, exist_ok=True)

# Two 256x256 source textures with a visible grid
for name, color in (("yellow_dice", (240, 200, 40, 255)), ("blue_dice", (40, 90, 220, 255))):
    image = Image.new('RGBA', (256, 256), color)
    draw = ImageDraw.Draw(image)
    for step in range(0, 256, 32):
        draw.line([(step, 0), (step, 255)], fill=(0, 0, 0, 255))
        draw.line([(0, step), (255, step)], fill=(0, 0, 0, 255))
    image.save(ASSETS / f"{name}.png")

polygons = [
    {"id": "yellow_0", "image_path": str(ASSETS / "yellow_dice.png"),
     "uv_coords": [(0.316406, 0.816406), (0.0, 0.628906), (0.316406, 0.628906)]},
    {"id": "yellow_1", "image_path": str(ASSETS / "yellow_dice.png"),
     "uv_coords": [(0.5, 1.0), (0.816406, 0.816406), (0.816406, 1.0)]},
    {"id": "yellow_2", "image_path": str(ASSETS / "yellow_dice.png"),
     "uv_coords": [(0.5, 0.816406), (0.816406, 0.628906), (0.816406, 0.816406)]},
    {"id": "blue_0", "image_path": str(ASSETS / "blue_dice.png"),
     "uv_coords": [(0.5, 0.329309), (0.816406, 0.145), (0.816406, 0.329309)],
     "downsample_factor": 0.5},
]

print("Packing dice faces...")
result = pack_polygons(polygons, output_dir=OUTPUT, config=TexturePlacerConfig(512, 512, padding=2))

for texture_id, mapping in result.mappings.items():
    uvs = ", ".join(f"({u:.3f}, {v:.3f})" for u, v in mapping.uv_coords)
    print(f"  {texture_id}: sheet {mapping.sheet_index} -> {uvs}")

print(f"✅ Wrote {len(result.sheet_paths)} sheet(s) to {OUTPUT}")
