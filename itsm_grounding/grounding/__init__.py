"""
Grounding Bounded Context
=========================

Turns a snapshot into a bounded, role-gated digest for the language model
and checks generated replies for unverified identifiers, emails, reference
numbers and write claims.
"""
