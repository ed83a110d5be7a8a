"""Tests for agents/image_describer.py."""

from __future__ import annotations

import asyncio
import math

import pytest
from conftest import FakeService, is_vision, make_image, request_text, vision_reply

from study_notes_generator.agents.image_describer import (
    build_batch_request,
    build_vision_prompt,
    chunk,
    describe_batch,
    describe_images,
    parse_image_descriptions,
)
from study_notes_generator.errors import ServiceError
from study_notes_generator.models import (
    ImagePart,
    ImageTier,
    Page,
    ProjectConfig,
    ServiceResponse,
)
from study_notes_generator.tools.cost_ledger import CostLedger


class TestChunk:
    @pytest.mark.parametrize("n,size", [(0, 5), (1, 5), (5, 5), (6, 5), (12, 5), (7, 1)])
    def test_ceil_batches_in_order(self, n, size):
        items = list(range(n))
        batches = chunk(items, size)
        assert len(batches) == math.ceil(n / size)
        assert all(len(b) <= size for b in batches)
        assert [x for b in batches for x in b] == items

    def test_last_batch_may_be_smaller(self):
        assert [len(b) for b in chunk(list(range(12)), 5)] == [5, 5, 2]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk([1, 2], 0)


class TestBuildVisionPrompt:
    def test_lists_ids_pages_and_context(self):
        batch = [make_image("img-3-1", 3), make_image("img-4-1", 4)]
        prompt = build_vision_prompt(batch, {3: "Mitosis phases", 4: ""})
        assert "1. Image ID: img-3-1 (page 3)" in prompt
        assert 'Slide text: "Mitosis phases"' in prompt
        assert "2. Image ID: img-4-1 (page 4)" in prompt
        assert "[img-3-1]\n<structured description>" in prompt
        assert "[img-4-1]\n<structured description>" in prompt

    def test_request_carries_images_in_order(self, config):
        batch = [make_image("img-1-1", 1), make_image("img-2-1", 2)]
        request = build_batch_request(batch, {}, "gpt-4o-mini", config)
        images = [p for p in request.parts if isinstance(p, ImagePart)]
        assert [p.data for p in images] == [batch[0].data, batch[1].data]
        assert all(p.detail == "low" for p in images)
        assert request.max_output_tokens == 3000
        assert request.temperature == 0.2


class TestParseImageDescriptions:
    def test_blocks_matched_by_id(self):
        batch = [make_image("img-1-1", 1), make_image("img-2-1", 2)]
        text = "[img-1-1]\nA cell membrane.\n\n[img-2-1]\nA mitochondrion."
        descs = parse_image_descriptions(text, batch)
        assert [(d.image_id, d.text) for d in descs] == [
            ("img-1-1", "A cell membrane."),
            ("img-2-1", "A mitochondrion."),
        ]
        assert descs[1].page_number == 2

    def test_out_of_order_blocks(self):
        batch = [make_image("img-1-1", 1), make_image("img-2-1", 2)]
        text = "[img-2-1]\nSecond.\n[img-1-1]\nFirst."
        descs = {d.image_id: d.text for d in parse_image_descriptions(text, batch)}
        assert descs == {"img-1-1": "First.", "img-2-1": "Second."}

    def test_single_image_fallback_takes_whole_text(self):
        batch = [make_image("img-1-1", 1)]
        descs = parse_image_descriptions("  A labelled diagram of a neuron.  ", batch)
        assert len(descs) == 1
        assert descs[0].text == "A labelled diagram of a neuron."

    def test_missing_block_in_multi_batch_left_undescribed(self):
        batch = [make_image("img-1-1", 1), make_image("img-2-1", 2)]
        descs = parse_image_descriptions("[img-1-1]\nOnly the first.", batch)
        assert [d.image_id for d in descs] == ["img-1-1"]
        assert descs[0].text == "Only the first."

    def test_ids_sharing_prefix(self):
        batch = [make_image("img-1-1", 1), make_image("img-1-10", 1)]
        text = "[img-1-10]\nTen.\n[img-1-1]\nOne."
        descs = {d.image_id: d.text for d in parse_image_descriptions(text, batch)}
        assert descs == {"img-1-1": "One.", "img-1-10": "Ten."}

    def test_inline_reference_to_another_image_stays_in_block(self):
        batch = [make_image("img-2-1", 2), make_image("img-4-1", 4)]
        text = (
            "[img-2-1]\nA cell membrane; compare with [img-4-1] for the organelle view.\n"
            "More about the membrane.\n\n[img-4-1]\nOrganelle diagram."
        )
        descs = {d.image_id: d.text for d in parse_image_descriptions(text, batch)}
        assert descs == {
            "img-2-1": "A cell membrane; compare with [img-4-1] for the organelle view.\n"
                       "More about the membrane.",
            "img-4-1": "Organelle diagram.",
        }


class TestDescribeBatch:
    def test_cost_uses_tier_rates(self, config):
        service = FakeService(lambda r: ServiceResponse(
            text=vision_reply(r), input_tokens=1_000_000, output_tokens=0,
        ))
        ledger = CostLedger()
        asyncio.run(describe_batch(
            service, [make_image("img-1-1", 1)], ImageTier.COMPLEX, {}, config, ledger,
        ))
        assert service.requests[0].model == "gpt-4o"
        assert ledger.total == pytest.approx(2.50)
        assert ledger.entries[0].stage == "describe"


class TestDescribeImages:
    def _pages(self, n_images: int, width: int = 300) -> list[Page]:
        return [
            Page(number=i, text=f"Slide {i}", images=(make_image(f"img-{i}-1", i, width=width),))
            for i in range(1, n_images + 1)
        ]

    def test_no_images_no_requests(self, config):
        service = FakeService(vision_reply)
        result = asyncio.run(describe_images(service, [Page(number=1, text="x")], config, CostLedger()))
        assert result == []
        assert service.requests == []

    def test_batches_per_tier(self):
        config = ProjectConfig(vision_batch_size=2, complex_image_min_width=350)
        pages = self._pages(3, width=300) + [
            Page(number=n, images=(make_image(f"img-{n}-1", n, width=400),)) for n in (4, 5, 6)
        ]
        service = FakeService(vision_reply)
        asyncio.run(describe_images(service, pages, config, CostLedger()))
        models = sorted(r.model for r in service.requests)
        # ceil(3/2) simple + ceil(3/2) complex
        assert models == ["gpt-4o", "gpt-4o", "gpt-4o-mini", "gpt-4o-mini"]

    def test_all_batches_in_flight_together(self):
        config = ProjectConfig(vision_batch_size=1)
        service = FakeService(vision_reply, delay=lambda r: 0.01)
        asyncio.run(describe_images(service, self._pages(4), config, CostLedger()))
        assert service.max_in_flight == 4

    def test_results_in_document_order_despite_completion_order(self):
        config = ProjectConfig(vision_batch_size=1)
        # Earlier pages finish last.
        service = FakeService(
            vision_reply,
            delay=lambda r: 0.05 if "img-1-1" in request_text(r) else 0.0,
        )
        descs = asyncio.run(describe_images(service, self._pages(3), config, CostLedger()))
        assert [d.image_id for d in descs] == ["img-1-1", "img-2-1", "img-3-1"]

    def test_failure_fails_stage(self):
        config = ProjectConfig(vision_batch_size=1)

        def handler(request):
            if "img-2-1" in request_text(request):
                raise ServiceError("boom")
            return vision_reply(request)

        with pytest.raises(ServiceError):
            asyncio.run(describe_images(FakeService(handler), self._pages(3), config, CostLedger()))

    def test_cost_accumulated_per_batch(self):
        config = ProjectConfig(vision_batch_size=2)
        ledger = CostLedger()
        service = FakeService(vision_reply)
        asyncio.run(describe_images(service, self._pages(5), config, ledger))
        assert len(ledger.entries) == 3
        assert all(is_vision(r) for r in service.requests)
