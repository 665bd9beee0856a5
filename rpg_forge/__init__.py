"""RPG Forge — conversational builder for RPG universes and characters.

Each user utterance is mined for known fields. Once enough is known, a draft
entity is synthesized, validated and offered for confirmation before being
handed to an entity store.
"""
