"""Prompt template and the random-instruction generator."""

from __future__ import annotations

import random

SYSTEM_TEMPLATE = """You are an expert JavaScript simulation engine.
Return a single, fully self-contained HTML document that fulfils the user's instruction.
- Be concise and creative; any JS/CSS allowed.
- Prefer fluid, responsive sizing that fits within the viewport.
- Avoid fixed widths wider than the viewport; use max-width:100% where sensible.
Output ONLY the HTML document. No explanations, no markdown fences.

Instruction:
{instruction}"""

STYLES = [
    "minimalist black-on-white", "neon arcade", "pastel paper-cut", "retro CRT",
    "blueprint grid", "eInk", "pixel art", "watercolor painting", "hand-drawn sketch",
    "isometric 3D", "low-poly", "vaporwave", "cyberpunk neon", "steampunk",
    "oil painting", "charcoal sketch", "pop art", "origami paper", "chalkboard drawing",
    "1980s synthwave", "claymation", "digital glitch", "futuristic hologram",
    "comic book inked", "children's book illustration", "cubist", "surreal dreamscape",
]

TYPES = [
    "website for", "game of", "children's game", "simulation of", "animation of",
    "educational tool for", "interactive story about", "puzzle game about",
    "arcade game of", "idle game of", "data visualisation of", "retro-style recreation of",
    "art installation about", "experimental project on", "minimalist interpretation of",
]

THINGS = [
    "boids flocking", "double pendulum", "orbital n-body simulation", "L-system tree growth",
    "2D wave interference", "Conway's Game of Life", "reaction-diffusion patterns",
    "particle fountain with collisions", "Perlin noise terrain", "traffic flow simulation",
    "pendulum wave", "DLA crystal growth", "spring-mass cloth simulation", "ants foraging",
    "maze generation and solving", "fractal snowflake growth", "ecosystem food chain",
    "galaxy formation", "lava lamp blobs", "solar system with planets and moons",
    "forest fire spread", "crowd evacuation simulation", "genetic algorithm evolving shapes",
    "ocean wave simulation", "light ray refraction and reflection", "magnetic field lines",
    "school of fish dynamics", "bouncing balls with gravity", "sandpile model",
    "lightning strikes", "black hole accretion disk", "fireworks display",
    "swirling ink in water", "falling cherry blossom petals", "comet tail simulation",
    "chain reaction of falling dominos", "raindrops racing down a window pane",
    "pong game with particle trail effects", "breakout game with glowing bricks",
    "asteroids arcade clone with neon particles", "snake game with particle trail",
    "space invaders with explosion effects",
]


def build_prompt(instruction: str) -> str:
    """Wrap the user's instruction in the single-document system template."""
    return SYSTEM_TEMPLATE.format(instruction=instruction.strip()).strip()


def random_instruction(rng: random.Random | None = None) -> str:
    pick = (rng or random).choice
    return f"make a {pick(TYPES)} {pick(THINGS)} in a {pick(STYLES)} style"
