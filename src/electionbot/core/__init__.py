"""
Core domain models, numeric primitives, document contracts and errors.

Independent of the chat front end and of the concrete document store.
"""
