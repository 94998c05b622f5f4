"""REST collaborator client (history, search, conversation creation).

Services:
    - ChatApiClient: typed async wrapper over the chat server's REST API.
"""
