"""
Recipe selection.

Recipes are registered by name, either in-process with ``register_recipe`` or
by third-party packages through the ``answer_proxy.recipes`` entry-point
group::

    [project.entry-points."answer_proxy.recipes"]
    private = "my_recipes.private:PrivateRecipe"

The configured recipe is resolved once at startup. Any failure falls back to
the bundled ``DefaultRecipe`` and is logged; startup never crashes on it.
"""
from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import Callable, Dict

from backend.answer_proxy.core.recipe import DefaultRecipe, PromptBuilder

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "answer_proxy.recipes"

RecipeFactory = Callable[[], PromptBuilder]

_REGISTRY: Dict[str, RecipeFactory] = {}


def register_recipe(name: str) -> Callable[[RecipeFactory], RecipeFactory]:
    def decorator(factory: RecipeFactory) -> RecipeFactory:
        _REGISTRY[name] = factory
        return factory

    return decorator


def unregister_recipe(name: str) -> None:
    _REGISTRY.pop(name, None)


register_recipe(DefaultRecipe.name)(DefaultRecipe)


def _find_factory(name: str) -> RecipeFactory:
    if name in _REGISTRY:
        return _REGISTRY[name]
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        if ep.name == name:
            return ep.load()
    raise LookupError(f"No recipe registered under '{name}'")


def load_recipe(name: str) -> PromptBuilder:
    try:
        recipe = _find_factory(name)()
        if not isinstance(recipe, PromptBuilder):
            raise TypeError(f"Recipe '{name}' does not implement build_prompts()")
        logger.info("Recipe loaded: %s", name)
        return recipe
    except Exception as e:
        logger.error("Failed to load recipe '%s': %s. Falling back to default recipe.", name, e)
        return DefaultRecipe()
