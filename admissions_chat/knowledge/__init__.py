"""Static knowledge base and its retriever."""
