import logging

import pytest

from backend.answer_proxy.core import recipe_registry
from backend.answer_proxy.core.recipe import DefaultRecipe
from backend.answer_proxy.core.recipe_registry import load_recipe, register_recipe, unregister_recipe
from backend.answer_proxy.models.schemas import PromptPair


class ShoutingRecipe:
    def build_prompts(self, request):
        return PromptPair(system_prompt="SYSTEM PROMPT!!", user_prompt=request.question.upper() * 3)


@pytest.fixture
def shouting():
    register_recipe("shouting")(ShoutingRecipe)
    yield
    unregister_recipe("shouting")


def test_default_is_registered():
    assert isinstance(load_recipe("default"), DefaultRecipe)


def test_registered_recipe_is_loaded(shouting):
    assert isinstance(load_recipe("shouting"), ShoutingRecipe)


def test_unknown_recipe_falls_back_to_default(caplog):
    with caplog.at_level(logging.ERROR):
        recipe = load_recipe("does-not-exist")

    assert isinstance(recipe, DefaultRecipe)
    assert "does-not-exist" in caplog.text


def test_failing_factory_falls_back_to_default():
    def broken():
        raise RuntimeError("boom")

    register_recipe("broken")(broken)
    try:
        assert isinstance(load_recipe("broken"), DefaultRecipe)
    finally:
        unregister_recipe("broken")


def test_object_without_build_prompts_is_rejected():
    register_recipe("not-a-recipe")(object)
    try:
        assert isinstance(load_recipe("not-a-recipe"), DefaultRecipe)
    finally:
        unregister_recipe("not-a-recipe")


def test_entry_point_recipe_is_loaded(monkeypatch):
    class FakeEntryPoint:
        name = "plugin"

        def load(self):
            return ShoutingRecipe

    def fake_entry_points(group):
        assert group == recipe_registry.ENTRY_POINT_GROUP
        return [FakeEntryPoint()]

    monkeypatch.setattr(recipe_registry, "entry_points", fake_entry_points)

    assert isinstance(load_recipe("plugin"), ShoutingRecipe)
