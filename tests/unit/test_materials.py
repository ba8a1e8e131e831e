"""Material codec: tagged union <-> stored strings."""

import json

import pydantic
import pytest

from errors import ValidationError
from sessions.materials import (
    MATERIAL_MARKER,
    LegacyMaterial,
    StructuredMaterial,
    append_material,
    decode_material,
    decode_materials,
    encode_material,
    material_adapter,
    remove_material_at,
)


@pytest.fixture
def chapter_pdf() -> StructuredMaterial:
    return StructuredMaterial(
        name="Chapter 5",
        kind="document",
        url="https://files.example.com/ch5.pdf",
        description="Derivatives",
        size=2048,
        mime_type="application/pdf",
        is_public=True,
    )


class TestEncodeDecode:
    def test_structured_material_survives_encoding(self, chapter_pdf):
        encoded = encode_material(chapter_pdf)

        assert encoded.startswith(MATERIAL_MARKER)
        assert decode_material(encoded) == chapter_pdf

    def test_variant_tag_is_not_stored(self, chapter_pdf):
        payload = json.loads(encode_material(chapter_pdf)[len(MATERIAL_MARKER):])

        assert "variant" not in payload
        assert payload["name"] == "Chapter 5"

    def test_unmarked_string_decodes_to_legacy_label(self):
        assert decode_material("Chapter 5 notes") == LegacyMaterial(label="Chapter 5 notes")

    def test_legacy_label_is_stored_verbatim(self):
        assert encode_material(LegacyMaterial(label="Old worksheet")) == "Old worksheet"

    @pytest.mark.parametrize(
        "raw",
        [
            MATERIAL_MARKER + "{not json",
            MATERIAL_MARKER + '{"name": "x"}',
            MATERIAL_MARKER + '{"name": "x", "kind": "video"}',
            MATERIAL_MARKER,
        ],
    )
    def test_malformed_payload_falls_back_to_whole_string(self, raw):
        decoded = decode_material(raw)

        assert isinstance(decoded, LegacyMaterial)
        assert decoded.label == raw

    def test_decode_materials_handles_missing_list(self):
        assert decode_materials(None) == []


class TestStructuredMaterial:
    def test_text_material_needs_inline_content(self):
        with pytest.raises(pydantic.ValidationError):
            StructuredMaterial(name="Summary", kind="text")

        material = StructuredMaterial(name="Summary", kind="text", content="Limits and continuity")
        assert material.url is None

    def test_linked_material_needs_url(self):
        with pytest.raises(pydantic.ValidationError):
            StructuredMaterial(name="Lecture", kind="video")

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            StructuredMaterial(name="Song", kind="audio", url="https://example.com/a.mp3")

    def test_adapter_picks_variant_from_tag(self):
        material = material_adapter.validate_python(
            {"variant": "structured", "name": "Slides", "kind": "presentation", "url": "https://example.com/s"}
        )
        assert isinstance(material, StructuredMaterial)
        assert material.is_public is False

        legacy = material_adapter.validate_python({"variant": "legacy", "label": "Notes"})
        assert isinstance(legacy, LegacyMaterial)


class TestAppendAndRemove:
    def test_append_keeps_existing_encodings(self, chapter_pdf):
        stored = ["Old worksheet"]

        updated = append_material(stored, chapter_pdf)

        assert updated[0] == "Old worksheet"
        assert decode_material(updated[1]) == chapter_pdf

    def test_append_strips_legacy_labels(self):
        assert append_material([], LegacyMaterial(label="  Homework 3  ")) == ["Homework 3"]

    @pytest.mark.parametrize("label", ["", "   ", MATERIAL_MARKER + "sneaky"])
    def test_append_rejects_bad_labels(self, label):
        with pytest.raises(ValidationError):
            append_material([], LegacyMaterial(label=label))

    def test_remove_drops_only_the_indexed_entry(self, chapter_pdf):
        video = StructuredMaterial(name="Lecture", kind="video", url="https://videos.example.com/1")
        stored = ["Old worksheet", encode_material(chapter_pdf), "Homework 3", encode_material(video)]

        updated = remove_material_at(stored, 1)

        assert updated == ["Old worksheet", "Homework 3", encode_material(video)]

    def test_remove_keeps_unreadable_entries_as_they_were(self):
        broken = MATERIAL_MARKER + "{broken"
        stored = [broken, "Homework 3"]

        assert remove_material_at(stored, 1) == [broken]

    @pytest.mark.parametrize("index", [-1, 2, 10])
    def test_remove_rejects_out_of_range_index(self, index):
        with pytest.raises(ValidationError, match="Invalid material index"):
            remove_material_at(["a", "b"], index)
