"""CBZ (zipped comic book) output.

Pages are stored as `page_001.<ext>`, `page_002.<ext>`, ... in a deflated ZIP
archive together with a `ComicInfo.xml` metadata document.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Sequence
import xml.etree.ElementTree as ET
import zipfile

from ..io.paths import canonical_extension, extension_of
from ..models.datatypes import SeriesMetadata


COMIC_INFO_NAME = "ComicInfo.xml"
_XSD_NAMESPACE = "http://www.w3.org/2001/XMLSchema"
_XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"


def page_entry_name(page: Path, ordinal: int) -> str:
    """Return the archive member name for a page, e.g. `page_007.jpg`."""

    ext = canonical_extension(extension_of(page)) or "img"
    return f"page_{ordinal:03d}.{ext}"


def build_comic_info(
    volume_index: int,
    series_metadata: SeriesMetadata,
    total_pages_in_file: int,
    chapter_titles: Sequence[str],
    release_date: date | None = None,
) -> bytes:
    """Serialize a `ComicInfo.xml` document for one volume."""

    released = release_date or date.today()
    root = ET.Element(
        "ComicInfo",
        {"xmlns:xsd": _XSD_NAMESPACE, "xmlns:xsi": _XSI_NAMESPACE},
    )

    def add(tag: str, value: object | None) -> None:
        if value is None or value == "":
            return
        ET.SubElement(root, tag).text = str(value)

    add("Title", series_metadata.title)
    add("Series", series_metadata.series or series_metadata.title)
    add("Number", volume_index)
    add("Volume", volume_index)
    add("Summary", series_metadata.description)
    add("Year", released.year)
    add("Month", released.month)
    add("Day", released.day)
    add("Writer", ", ".join(series_metadata.authors))
    add("Publisher", series_metadata.publisher)
    add("Genre", series_metadata.genre)
    add("Tags", ", ".join(series_metadata.tags))
    add("Web", series_metadata.web)
    add("PageCount", total_pages_in_file)
    add("LanguageISO", series_metadata.language)
    add("GTIN", series_metadata.identifier)

    notes = []
    if chapter_titles:
        notes.append("Chapters: " + ", ".join(chapter_titles))
    if series_metadata.rights:
        notes.append(f"Rights: {series_metadata.rights}")
    for key in sorted(series_metadata.custom_fields):
        notes.append(f"{key}: {series_metadata.custom_fields[key]}")
    add("Notes", "\n".join(notes))

    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


class CbzGenerator:
    """Write one volume into `<output_directory>/<base_file_name>.cbz`."""

    def __init__(self, output_directory: Path, base_file_name: str) -> None:
        output_directory.mkdir(parents=True, exist_ok=True)
        self.path = output_directory / f"{base_file_name}.cbz"
        self._archive: zipfile.ZipFile | None = zipfile.ZipFile(
            self.path, "w", zipfile.ZIP_DEFLATED
        )

    def _require_open(self) -> zipfile.ZipFile:
        if self._archive is None:
            raise RuntimeError(f"CBZ archive is already finalized: {self.path}")
        return self._archive

    def append_page(self, page: Path, ordinal: int) -> None:
        self._require_open().write(page, arcname=page_entry_name(page, ordinal))

    def write_metadata(
        self,
        file_name_base: str,
        volume_index: int,
        series_metadata: SeriesMetadata,
        total_pages_in_file: int,
        chapter_titles: Sequence[str],
    ) -> None:
        payload = build_comic_info(
            volume_index,
            series_metadata,
            total_pages_in_file,
            chapter_titles,
        )
        self._require_open().writestr(COMIC_INFO_NAME, payload)

    def finalize(self) -> None:
        archive = self._require_open()
        archive.close()
        self._archive = None

    def abort(self) -> None:
        """Close the archive if still open and delete the partial file."""

        archive, self._archive = self._archive, None
        try:
            if archive is not None:
                archive.close()
        finally:
            self.path.unlink(missing_ok=True)


class CbzGeneratorFactory:
    """Factory producing `CbzGenerator` instances."""

    def open(self, output_directory: Path, base_file_name: str) -> CbzGenerator:
        return CbzGenerator(output_directory, base_file_name)
