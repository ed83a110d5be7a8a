"""Tests for tools/complexity_router.py."""

from __future__ import annotations

from conftest import make_image

from study_notes_generator.models import ImageTier, ProjectConfig
from study_notes_generator.tools.complexity_router import classify_image, route_images


class TestClassifyImage:
    def test_small_is_simple(self):
        img = make_image("img-1-1", 1, data=b"x" * 1000, width=400)
        assert classify_image(img, ProjectConfig()) == ImageTier.SIMPLE

    def test_wide_is_complex(self):
        img = make_image("img-1-1", 1, data=b"x" * 1000, width=501)
        assert classify_image(img, ProjectConfig()) == ImageTier.COMPLEX

    def test_width_at_threshold_is_simple(self):
        img = make_image("img-1-1", 1, data=b"x" * 1000, width=500)
        assert classify_image(img, ProjectConfig()) == ImageTier.SIMPLE

    def test_heavy_is_complex(self):
        img = make_image("img-1-1", 1, data=b"x" * 102_401, width=100)
        assert classify_image(img, ProjectConfig()) == ImageTier.COMPLEX

    def test_custom_thresholds(self):
        config = ProjectConfig(complex_image_min_width=100, complex_image_min_bytes=10**9)
        img = make_image("img-1-1", 1, width=150)
        assert classify_image(img, config) == ImageTier.COMPLEX


class TestRouteImages:
    def test_every_image_routed_once_in_order(self):
        config = ProjectConfig(complex_image_min_width=250)
        images = [
            make_image("img-1-1", 1, width=100),
            make_image("img-2-1", 2, width=300),
            make_image("img-3-1", 3, width=200),
            make_image("img-4-1", 4, width=400),
        ]
        routed = route_images(images, config)
        assert [i.id for i in routed[ImageTier.SIMPLE]] == ["img-1-1", "img-3-1"]
        assert [i.id for i in routed[ImageTier.COMPLEX]] == ["img-2-1", "img-4-1"]

    def test_empty_tiers_present(self):
        routed = route_images([], ProjectConfig())
        assert routed == {ImageTier.SIMPLE: [], ImageTier.COMPLEX: []}

    def test_tier_selects_model(self):
        config = ProjectConfig()
        assert config.model_for_tier(ImageTier.SIMPLE) == "gpt-4o-mini"
        assert config.model_for_tier(ImageTier.COMPLEX) == "gpt-4o"
