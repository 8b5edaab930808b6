# flake8: noqa
"""
Backend package for the Kolosal AI platform dashboard API.

Modules:
    settings:   Configuration loading and persistence helpers.
    storage:    Timestamp helpers and lock-guarded in-memory record stores.
    ollama:     Ollama daemon client, model resolution and sampling options.
    prompts:    Chat transcript and language task prompt builders.
    inference:  Chat, language and streaming playground services.
    analytics:  Request log and dashboard aggregations.
    media:      Placeholder image and speech generators.
    mcp:        MCP tool registry, built-in tools and contexts.
    conditions: Safe evaluator for workflow branch expressions.
    workflows:  Workflow store and graph executor.
    jobs:       Simulated fine-tuning queue and its monitor.
    accounts:   API keys and compute cluster inventory.
    main:       FastAPI application wiring everything together.
"""
