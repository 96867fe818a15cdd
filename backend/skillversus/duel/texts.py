from __future__ import annotations

import random

from .models import TypingContent

DIFFICULTIES = ("easy", "medium", "hard")

TYPING_TEXTS: list[dict] = [
    {
        "text": "The quick brown fox jumps over the lazy dog near the riverbank while birds chirp melodiously in the ancient oak trees swaying gently in the cool morning breeze",
        "difficulty": "easy",
        "category": "classic",
    },
    {
        "text": "Programming requires logical thinking and problem solving skills to create efficient algorithms that can process data structures and handle complex computational tasks effectively",
        "difficulty": "medium",
        "category": "programming",
    },
    {
        "text": "JavaScript developers must understand asynchronous programming patterns including promises callbacks and async await syntax to build responsive web applications that handle user interactions smoothly",
        "difficulty": "medium",
        "category": "programming",
    },
    {
        "text": "Machine learning algorithms utilize mathematical models to analyze patterns in large datasets enabling artificial intelligence systems to make predictions and classifications with remarkable accuracy",
        "difficulty": "hard",
        "category": "technology",
    },
    {
        "text": "The ancient library contained thousands of leather bound books filled with wisdom from scholars who dedicated their lives to understanding the mysteries of science philosophy and mathematics",
        "difficulty": "medium",
        "category": "literature",
    },
    {
        "text": "Competitive programming contests challenge participants to solve algorithmic problems efficiently using optimal time and space complexity while implementing clean readable code within strict time constraints",
        "difficulty": "hard",
        "category": "programming",
    },
    {
        "text": "Modern web development frameworks provide powerful tools for building interactive user interfaces that respond dynamically to user input while maintaining excellent performance across different devices",
        "difficulty": "medium",
        "category": "programming",
    },
    {
        "text": "Scientists discovered that quantum computers can perform certain calculations exponentially faster than classical computers by leveraging quantum mechanical phenomena such as superposition and entanglement",
        "difficulty": "hard",
        "category": "science",
    },
    {
        "text": "The mountain climber carefully planned each step up the treacherous rocky slope while monitoring weather conditions and ensuring safety equipment was properly secured for the challenging ascent",
        "difficulty": "easy",
        "category": "adventure",
    },
    {
        "text": "Database administrators optimize query performance by analyzing execution plans creating appropriate indexes and implementing efficient schema designs that support high volume transaction processing",
        "difficulty": "hard",
        "category": "programming",
    },
    {
        "text": "Children learn best through interactive play and exploration that encourages creativity while building fundamental skills in communication mathematics and critical thinking through engaging activities",
        "difficulty": "easy",
        "category": "education",
    },
    {
        "text": "Blockchain technology revolutionizes digital transactions by creating decentralized networks that maintain transparent immutable ledgers without requiring traditional financial intermediaries or central authorities",
        "difficulty": "hard",
        "category": "technology",
    },
    {
        "text": "Professional musicians practice scales and techniques daily to develop muscle memory and maintain precise finger coordination that enables them to perform complex compositions with emotional expression",
        "difficulty": "medium",
        "category": "music",
    },
    {
        "text": "Cloud computing platforms provide scalable infrastructure services that allow businesses to deploy applications globally while reducing operational costs and improving system reliability through redundancy",
        "difficulty": "medium",
        "category": "technology",
    },
    {
        "text": "Cooking requires careful attention to ingredient proportions cooking temperatures and timing to create delicious meals that balance flavors textures and nutritional value for optimal dining experiences",
        "difficulty": "easy",
        "category": "lifestyle",
    },
]


def pick_text(difficulty: str | None = None, rng: random.Random | None = None) -> TypingContent:
    """Random corpus entry; falls back to the whole corpus for unknown difficulties."""
    r = rng or random
    pool = [t for t in TYPING_TEXTS if difficulty and t["difficulty"] == difficulty]
    if not pool:
        pool = TYPING_TEXTS
    entry = r.choice(pool)
    return TypingContent.from_text(entry["text"], category=entry["category"], difficulty=entry["difficulty"])
