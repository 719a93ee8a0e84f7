import enum
import io
import logging
import pathlib
import re
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from PIL import Image, UnidentifiedImageError
from progressbar import progressbar

import config

logger = logging.getLogger(__name__)

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

LayerSet = Tuple[pathlib.Path, ...]
PathLike = Union[str, pathlib.Path]

# Pillow reports broken chunks as SyntaxError and oversized headers as
# DecompressionBombError, neither of which is an OSError
DECODE_ERRORS = (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError)


class AvatarError(Exception):
    """Base class for avatar generation errors."""


class AssetLoadError(AvatarError):
    """A layer directory is missing, unreadable or empty."""


class UnknownCategoryError(AvatarError, ValueError):
    def __init__(self, category):
        super().__init__(f"Unknown category: {category!r}")
        self.category = category


class AssetDecodeError(AvatarError):
    def __init__(self, path: PathLike, reason: Exception):
        super().__init__(f"Cannot decode asset {path}: {reason}")
        self.path = pathlib.Path(path)


class FileWriteError(AvatarError):
    def __init__(self, path: PathLike, reason: Exception):
        super().__init__(f"Cannot write avatar to {path}: {reason}")
        self.path = pathlib.Path(path)


class Category(enum.IntEnum):
    MALE = 0
    FEMALE = 1
    MONSTER = 2


@dataclass(frozen=True)
class CategoryAssets:
    clothes: LayerSet
    eye: LayerSet
    face: LayerSet
    hair: LayerSet
    mouth: LayerSet

    def layer(self, name: str) -> LayerSet:
        return getattr(self, name)


@dataclass(frozen=True)
class AssetCatalog:
    background: LayerSet
    categories: Mapping[Category, CategoryAssets]


_DIGITS = re.compile(r"(\d+)")


def natural_key(name: str):
    """Sort key comparing embedded numbers by value, so "2" sorts before "10"."""
    # re.split with a capture group alternates text and digits, starting with text
    parts = [int(part) if idx % 2 else part for idx, part in enumerate(_DIGITS.split(name))]
    return parts, name


def _is_hidden(name: str) -> bool:
    return name in config.HIDDEN_FILES or name.startswith(".")


def read_assets(directory: pathlib.Path) -> LayerSet:
    """List the asset files of one layer directory in natural order."""
    if not directory.is_dir():
        raise AssetLoadError(f"Layer directory not found: {directory}")

    try:
        assets = [
            entry
            for entry in directory.iterdir()
            if entry.is_file() and not _is_hidden(entry.name)
        ]
    except OSError as exc:
        raise AssetLoadError(f"Cannot read layer directory {directory}: {exc}") from exc

    if not assets:
        raise AssetLoadError(f"Layer directory has no assets: {directory}")

    return tuple(sorted(assets, key=lambda asset: natural_key(asset.name)))


def load_catalog(root: PathLike = config.ASSETS_PATH) -> AssetCatalog:
    """Scan the asset tree once and build the read-only catalog.

    Expected layout::

        root/background/
        root/<category>/{clothes,eye,face,hair,mouth}/

    Raises:
        AssetLoadError: if any layer directory is missing, unreadable or empty.
    """
    root = pathlib.Path(root)
    background = read_assets(root / dict(config.LAYERS)["background"])

    categories = {}
    for category in Category:
        category_path = root / config.CATEGORY_DIRECTORIES[category.name.lower()]
        categories[category] = CategoryAssets(
            **{
                name: read_assets(category_path / directory)
                for name, directory in config.LAYERS
                if name not in config.SHARED_LAYERS
            }
        )

    logger.info(
        "Loaded asset catalog from %s: %d backgrounds, %d categories",
        root,
        len(background),
        len(categories),
    )
    return AssetCatalog(background=background, categories=MappingProxyType(categories))


def resolve_category(value) -> Category:
    """Accept a Category, its integer value or its (case-insensitive) name."""
    if isinstance(value, Category):
        return value
    if isinstance(value, str):
        try:
            return Category[value.strip().upper()]
        except KeyError:
            raise UnknownCategoryError(value) from None
    # bool and float compare equal to ints, keep the set closed to real integers
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise UnknownCategoryError(value)
    try:
        return Category(int(value))
    except ValueError:
        raise UnknownCategoryError(value) from None


def resolve(catalog: AssetCatalog, category) -> CategoryAssets:
    """Return the layer sets owned by ``category``."""
    category = resolve_category(category)
    try:
        return catalog.categories[category]
    except KeyError:
        raise UnknownCategoryError(category) from None


def layer_sets(catalog: AssetCatalog, category) -> List[Tuple[str, LayerSet]]:
    """Layer sets of a category, in draw order."""
    assets = resolve(catalog, category)
    return [
        (name, catalog.background if name in config.SHARED_LAYERS else assets.layer(name))
        for name, _ in config.LAYERS
    ]


def count_combinations(catalog: AssetCatalog, category) -> int:
    """Get total number of distinct avatars a category can produce."""
    total = 1
    for _, layer_set in layer_sets(catalog, category):
        total = total * len(layer_set)
    return total


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoded text."""
    value = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * FNV_PRIME) & 0xFFFFFFFF
    return value


def username_seed(username: str) -> int:
    return fnv1a_32(username)


def random_seed() -> int:
    return time.time_ns()


def make_rng(seed: int) -> np.random.Generator:
    """Create the generator for one avatar.

    numpy rejects negative seeds, so a signed 64-bit seed is mapped onto its
    unsigned two's-complement value.
    """
    return np.random.default_rng(seed & 0xFFFFFFFFFFFFFFFF)


def pick_one(rng: np.random.Generator, layer_set: Sequence[pathlib.Path]) -> pathlib.Path:
    """Pick one asset uniformly by index."""
    if not layer_set:
        raise ValueError("Cannot pick from an empty layer set")
    return layer_set[int(rng.integers(len(layer_set)))]


def select_layers(
    catalog: AssetCatalog, category, seed: int
) -> List[Tuple[str, pathlib.Path]]:
    """Pick one asset per layer, in draw order, from a single seeded generator.

    The draw order fixes which pick consumes which random draw, so it must not
    change for a seed to keep producing the same avatar.
    """
    sets = layer_sets(catalog, category)
    rng = make_rng(seed)
    return [(name, pick_one(rng, layer_set)) for name, layer_set in sets]


def open_layer(path: pathlib.Path) -> Image.Image:
    """Decode an asset as an RGBA image the size of the canvas."""
    try:
        with Image.open(path) as img:
            layer = img.convert("RGBA")
    except DECODE_ERRORS as exc:
        raise AssetDecodeError(path, exc) from exc

    # Anchor at the origin: crop larger layers, pad smaller ones with transparency
    if layer.size != config.CANVAS_SIZE:
        layer = layer.crop((0, 0) + tuple(config.CANVAS_SIZE))
    return layer


def compose_layers(filepaths: Iterable[pathlib.Path]) -> Image.Image:
    """Stack layers back to front onto a blank transparent canvas.

    Stops at the first asset that cannot be decoded.
    """
    canvas = Image.new("RGBA", config.CANVAS_SIZE, (0, 0, 0, 0))
    for filepath in filepaths:
        canvas.alpha_composite(open_layer(filepath))
    return canvas


def compose(catalog: AssetCatalog, category, seed: int) -> Image.Image:
    """Build the avatar a (category, seed) pair maps to."""
    picks = select_layers(catalog, category, seed)
    logger.debug("Composing %s avatar, seed=%s: %s", resolve_category(category).name, seed, picks)
    return compose_layers(path for _, path in picks)


def format_for_path(file_path: PathLike) -> str:
    """Image format implied by the file extension. Default is PNG."""
    suffix = pathlib.Path(file_path).suffix.lower()
    if suffix in (".jpg", ".jpeg"):
        return "JPEG"
    if suffix == ".gif":
        return "GIF"
    return "PNG"


def encode(canvas: Image.Image, format_hint: str) -> bytes:
    """Serialize the canvas as JPEG, GIF or (for anything else) PNG."""
    buffer = io.BytesIO()
    format_hint = (format_hint or "").upper()
    if format_hint in ("JPEG", "JPG"):
        canvas.convert("RGB").save(buffer, format="JPEG", quality=config.JPEG_QUALITY)
    elif format_hint == "GIF":
        canvas.save(buffer, format="GIF")
    else:
        canvas.save(buffer, format="PNG")
    return buffer.getvalue()


def save_to_file(canvas: Image.Image, file_path: PathLike) -> None:
    data = encode(canvas, format_for_path(file_path))
    try:
        pathlib.Path(file_path).write_bytes(data)
    except OSError as exc:
        raise FileWriteError(file_path, exc) from exc


def generate(catalog: AssetCatalog, category) -> Image.Image:
    """Generate a random avatar."""
    return compose(catalog, category, random_seed())


def generate_from_username(catalog: AssetCatalog, category, username: str) -> Image.Image:
    """Generate the avatar of a username. The same username always gets the same avatar."""
    return compose(catalog, category, username_seed(username))


def generate_file(catalog: AssetCatalog, category, file_path: PathLike) -> None:
    """Generate a random avatar and save it to ``file_path``.

    Image format depends on the file extension (jpeg, jpg, png, gif). Default is png.
    """
    save_to_file(generate(catalog, category), file_path)


def generate_file_from_username(
    catalog: AssetCatalog, category, username: str, file_path: PathLike
) -> None:
    """Generate the avatar of a username and save it to ``file_path``."""
    save_to_file(generate_from_username(catalog, category, username), file_path)


def generate_batch(
    catalog: AssetCatalog,
    category,
    count: Optional[int],
    output_dir: PathLike,
    usernames: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Generate avatars into a directory and return their trait metadata.

    Args:
        catalog: Loaded asset catalog
        category: Category of every avatar in the batch
        count: Number of random avatars; ignored when usernames are given
        output_dir: Directory receiving the images and metadata.csv
        usernames: One deterministic avatar per username

    Returns:
        DataFrame with the seed, username and picked asset of each layer per avatar
    """
    category = resolve_category(category)
    if usernames is not None:
        usernames = list(usernames)
        count = len(usernames)
    if count is None or count < 0:
        raise ValueError(f"Invalid avatar count: {count}")

    output_dir = pathlib.Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    # Calculate zero-padding width
    zfill_width = len(str(max(count - 1, 0)))

    records = {"seed": [], "username": []}
    records.update({name: [] for name, _ in config.LAYERS})

    for idx in progressbar(range(count)):
        username = usernames[idx] if usernames is not None else None
        seed = username_seed(username) if username is not None else random_seed()

        picks = select_layers(catalog, category, seed)
        save_to_file(
            compose_layers(path for _, path in picks),
            output_dir / f"{idx:0{zfill_width}d}.png",
        )

        records["seed"].append(seed)
        records["username"].append(username)
        for name, path in picks:
            records[name].append(path.stem)

    metadata_df = pd.DataFrame(records)
    metadata_df.to_csv(output_dir / "metadata.csv", index=False)
    logger.info("Generated %d %s avatars in %s", count, category.name, output_dir)

    return metadata_df


def main() -> None:
    """Interactive avatar generation."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    print("Checking assets...")
    try:
        catalog = load_catalog(config.ASSETS_PATH)
    except AssetLoadError as exc:
        logger.error("Asset catalog unavailable: %s", exc)
        raise SystemExit(1) from exc
    print("✅ Assets validated successfully!\n")

    for category in Category:
        total = count_combinations(catalog, category)
        print(f"{category.name.lower()}: up to {total} distinct avatars")

    try:
        category = resolve_category(
            input("\nWhich category (male, female, monster)? ")
        )
        mode = input("Single file or batch? [file/batch]: ").strip().lower()

        if mode == "batch":
            count = int(input("How many avatars would you like to create? "))
            edition_name = input("What would you like to call this edition?: ").strip()
            output_dir = config.OUTPUT_PATH / f"edition_{edition_name}"

            print("Starting generation...")
            metadata_df = generate_batch(catalog, category, count, output_dir)
            print(f"✅ Generated {len(metadata_df)} avatars in {output_dir}")
        else:
            username = input("Username (leave blank for a random avatar): ").strip()
            file_path = input("Destination file [avatar.png]: ").strip() or "avatar.png"

            if username:
                generate_file_from_username(catalog, category, username, file_path)
            else:
                generate_file(catalog, category, file_path)
            print(f"✅ Avatar saved to {file_path}")
    except AvatarError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc


# Run the main function
if __name__ == "__main__":
    main()
