"""
DOCX export for stored pieces, written directly as OpenXML parts.

The package holds only what Word needs to open a document with a few
paragraph styles: content types, package and document relationships, the
main document part, a styles part and core/app metadata. Parts are written
into a temporary directory and zipped from there; the directory is removed
whether or not the build succeeds.

Public API
----------
ContainerBuilder.build(piece)          -> bytes
ContainerBuilder.body_paragraphs(text) -> List[Tuple[str, str]]
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
import zipfile
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

import aiofiles

from lexdraft.config import settings
from lexdraft.exceptions import ContainerBuildFailed
from lexdraft.models.domain import Piece
from lexdraft.services.templates import get_template

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

STYLE_NORMAL = "Normal"
STYLE_TITLE = "Title"
STYLE_SECTION = "Heading1"
STYLE_SUBSECTION = "Heading2"

NBSP = " "

_SUBSECTION_RE = re.compile(r"^\s{0,3}#{3,}\s+(.*?)\s*#*\s*$")
_SECTION_RE = re.compile(r"^\s{0,3}##\s+(.*?)\s*#*\s*$")
_INVALID_XML_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

_W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

# ---------------------------------------------------------------------------
# Fixed package parts
# ---------------------------------------------------------------------------

_XML_DECL = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'

_CONTENT_TYPES = _XML_DECL + (
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    '<Override PartName="/word/styles.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.styles+xml"/>'
    '<Override PartName="/docProps/core.xml" '
    'ContentType="application/vnd.openxmlformats-package.core-properties+xml"/>'
    '<Override PartName="/docProps/app.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.extended-properties+xml"/>'
    '</Types>'
)

_PACKAGE_RELS = _XML_DECL + (
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    '<Relationship Id="rId2" '
    'Type="http://schemas.openxmlformats.org/package/2006/relationships/metadata/core-properties" '
    'Target="docProps/core.xml"/>'
    '<Relationship Id="rId3" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/extended-properties" '
    'Target="docProps/app.xml"/>'
    '</Relationships>'
)

_DOCUMENT_RELS = _XML_DECL + (
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles" '
    'Target="styles.xml"/>'
    '</Relationships>'
)

_STYLES = _XML_DECL + (
    f'<w:styles xmlns:w="{_W_NS}">'
    '<w:docDefaults><w:rPrDefault><w:rPr>'
    '<w:rFonts w:ascii="Times New Roman" w:hAnsi="Times New Roman" w:cs="Times New Roman"/>'
    '<w:sz w:val="24"/><w:lang w:val="pt-BR"/>'
    '</w:rPr></w:rPrDefault>'
    '<w:pPrDefault><w:pPr><w:spacing w:after="120" w:line="360" w:lineRule="auto"/></w:pPr></w:pPrDefault>'
    '</w:docDefaults>'
    '<w:style w:type="paragraph" w:default="1" w:styleId="Normal">'
    '<w:name w:val="Normal"/><w:qFormat/><w:pPr><w:jc w:val="both"/></w:pPr>'
    '</w:style>'
    '<w:style w:type="paragraph" w:styleId="Title">'
    '<w:name w:val="Title"/><w:basedOn w:val="Normal"/><w:next w:val="Normal"/><w:qFormat/>'
    '<w:pPr><w:jc w:val="center"/><w:spacing w:before="240" w:after="240"/></w:pPr>'
    '<w:rPr><w:b/><w:sz w:val="32"/></w:rPr>'
    '</w:style>'
    '<w:style w:type="paragraph" w:styleId="Heading1">'
    '<w:name w:val="heading 1"/><w:basedOn w:val="Normal"/><w:next w:val="Normal"/><w:qFormat/>'
    '<w:pPr><w:keepNext/><w:jc w:val="left"/><w:spacing w:before="240" w:after="120"/><w:outlineLvl w:val="0"/></w:pPr>'
    '<w:rPr><w:b/><w:caps/><w:sz w:val="28"/></w:rPr>'
    '</w:style>'
    '<w:style w:type="paragraph" w:styleId="Heading2">'
    '<w:name w:val="heading 2"/><w:basedOn w:val="Normal"/><w:next w:val="Normal"/><w:qFormat/>'
    '<w:pPr><w:keepNext/><w:jc w:val="left"/><w:spacing w:before="200" w:after="100"/><w:outlineLvl w:val="1"/></w:pPr>'
    '<w:rPr><w:b/><w:sz w:val="26"/></w:rPr>'
    '</w:style>'
    '</w:styles>'
)

_SECT_PR = (
    '<w:sectPr>'
    '<w:pgSz w:w="11906" w:h="16838"/>'
    '<w:pgMar w:top="1417" w:right="1134" w:bottom="1134" w:left="1701" '
    'w:header="708" w:footer="708" w:gutter="0"/>'
    '</w:sectPr>'
)


# ---------------------------------------------------------------------------
# XML helpers
# ---------------------------------------------------------------------------

def _xml_text(text: str) -> str:
    return escape(_INVALID_XML_RE.sub("", text.replace("\r", "")))


def _paragraph(text: str, style: str = STYLE_NORMAL, center: bool = False, bold: bool = False) -> str:
    ppr = f'<w:pStyle w:val="{style}"/>' if style != STYLE_NORMAL else ""
    if center:
        ppr += '<w:jc w:val="center"/>'
    rpr = "<w:rPr><w:b/></w:rPr>" if bold else ""
    return (
        f"<w:p>{f'<w:pPr>{ppr}</w:pPr>' if ppr else ''}"
        f'<w:r>{rpr}<w:t xml:space="preserve">{_xml_text(text)}</w:t></w:r></w:p>'
    )


def _core_properties(title: str, stamp: datetime) -> str:
    iso = stamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return _XML_DECL + (
        '<cp:coreProperties '
        'xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:dcterms="http://purl.org/dc/terms/" '
        'xmlns:dcmitype="http://purl.org/dc/dcmitype/" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
        f"<dc:title>{_xml_text(title)}</dc:title>"
        "<dc:creator>LexDraft</dc:creator>"
        "<dc:language>pt-BR</dc:language>"
        f'<dcterms:created xsi:type="dcterms:W3CDTF">{iso}</dcterms:created>'
        f'<dcterms:modified xsi:type="dcterms:W3CDTF">{iso}</dcterms:modified>'
        "</cp:coreProperties>"
    )


def _app_properties(paragraph_count: int) -> str:
    return _XML_DECL + (
        '<Properties '
        'xmlns="http://schemas.openxmlformats.org/officeDocument/2006/extended-properties" '
        'xmlns:vt="http://schemas.openxmlformats.org/officeDocument/2006/docPropsVTypes">'
        "<Application>LexDraft</Application>"
        f"<Paragraphs>{paragraph_count}</Paragraphs>"
        "</Properties>"
    )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class ContainerBuilder:
    """Serializes a Piece into DOCX bytes without an office-document library."""

    def __init__(self, header_lines: Optional[Sequence[str]] = None) -> None:
        self.header_lines = (
            list(header_lines) if header_lines is not None else settings.get_institution_header()
        )

    @staticmethod
    def body_paragraphs(text: str) -> List[Tuple[str, str]]:
        """Map each line of *text* to ``(style, paragraph text)``."""
        paragraphs: List[Tuple[str, str]] = []
        for line in text.split("\n"):
            line = line.rstrip("\r")
            subsection = _SUBSECTION_RE.match(line)
            if subsection:
                paragraphs.append((STYLE_SUBSECTION, subsection.group(1)))
                continue
            section = _SECTION_RE.match(line)
            if section:
                paragraphs.append((STYLE_SECTION, section.group(1)))
                continue
            paragraphs.append((STYLE_NORMAL, line if line.strip() else NBSP))
        return paragraphs

    def document_xml(self, piece: Piece) -> Tuple[str, int]:
        """Return the main document part and its paragraph count."""
        title = get_template(piece.document_type).title.upper()
        stamp = piece.updated_at or piece.created_at

        parts = [_paragraph(line, center=True, bold=True) for line in self.header_lines]
        parts.append(_paragraph(title, style=STYLE_TITLE))
        parts.append(_paragraph(f"Gerado em {stamp.strftime('%d/%m/%Y %H:%M')}", center=True))
        parts.extend(_paragraph(text, style=style) for style, text in self.body_paragraphs(piece.text))

        xml = _XML_DECL + (
            f'<w:document xmlns:w="{_W_NS}"><w:body>'
            + "".join(parts)
            + _SECT_PR
            + "</w:body></w:document>"
        )
        return xml, len(parts)

    async def build(self, piece: Piece) -> bytes:
        """
        Write the package parts to a temp dir, zip them and return the bytes.

        Raises:
            ContainerBuildFailed: any filesystem or archiving error.
        """
        document, paragraph_count = self.document_xml(piece)
        title = get_template(piece.document_type).title
        package = {
            "[Content_Types].xml": _CONTENT_TYPES,
            "_rels/.rels": _PACKAGE_RELS,
            "word/document.xml": document,
            "word/styles.xml": _STYLES,
            "word/_rels/document.xml.rels": _DOCUMENT_RELS,
            "docProps/core.xml": _core_properties(title, piece.updated_at or piece.created_at),
            "docProps/app.xml": _app_properties(paragraph_count),
        }

        try:
            with tempfile.TemporaryDirectory(prefix="lexdraft-") as workdir:
                for name, content in package.items():
                    path = os.path.join(workdir, "parts", name)
                    os.makedirs(os.path.dirname(path), exist_ok=True)
                    async with aiofiles.open(path, "w", encoding="utf-8") as out:
                        await out.write(content)

                archive_path = os.path.join(workdir, f"peca_{piece.id}.docx")
                with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                    # [Content_Types].xml first, as Word expects
                    for name in package:
                        archive.write(os.path.join(workdir, "parts", name), arcname=name)

                async with aiofiles.open(archive_path, "rb") as handle:
                    data = await handle.read()
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            logger.error("build: DOCX export failed for piece %s: %s", piece.id, exc)
            raise ContainerBuildFailed(f"Could not build DOCX for piece {piece.id}: {exc}") from exc

        logger.info("build: piece %s exported (%d bytes)", piece.id, len(data))
        return data
