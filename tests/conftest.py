from pathlib import Path

import pytest
from PIL import Image

from distbuild.config import BuildConfig

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <title>Test site</title>
  <!-- loader -->
  <link rel="stylesheet" href="css/loaders/loader.css">
  <link rel="stylesheet" href="css/a.css">
  <script type="application/ld+json">
  {
    "@context": "https://schema.org",
    "@type": "Person",
    "name": "Jude"
  }
  </script>
</head>
<body>
  <img class="avatar__image" src="img/a.jpg" alt="Avatar">
  <img src="img/b.png" alt="Logo">
  <script src="js/a.js"></script>
  <script src="https://assets.calendly.com/assets/external/widget.js"></script>
</body>
</html>
"""


def write_jpeg(path: Path, color=(200, 30, 30)) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (32, 24), color).save(path, "JPEG", quality=95)


def write_png(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", (16, 16), (10, 120, 240, 128)).save(path, "PNG")


@pytest.fixture
def site(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    write_jpeg(root / "img" / "a.jpg")
    write_png(root / "img" / "b.png")
    (root / "img" / "icons").mkdir(parents=True)
    (root / "img" / "icons" / "menu.svg").write_text("<svg></svg>", encoding="utf-8")

    (root / "css" / "loaders").mkdir(parents=True)
    (root / "css" / "a.css").write_text(".x { color: red; }\n", encoding="utf-8")
    (root / "css" / "loaders" / "loader.css").write_text(".spin {\n  color: blue;\n}\n", encoding="utf-8")

    (root / "js").mkdir()
    (root / "js" / "a.js").write_text('// greet\nconsole.log("hello");\n\n', encoding="utf-8")

    (root / "fonts" / "inter").mkdir(parents=True)
    (root / "fonts" / "inter" / "inter.woff2").write_bytes(b"\x00woff2\x01")
    (root / "robots.txt").write_text("User-agent: *\n", encoding="utf-8")

    (root / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    return root


@pytest.fixture
def config(site: Path) -> BuildConfig:
    return BuildConfig(root=site, threads=2)
