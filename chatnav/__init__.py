"""
chatnav: Chat-driven Web Search and Browsing

This package lets a conversational agent search the web and browse webpages on behalf
of chat users. Each user gets an independent navigation session that survives across
messages, driven by short imperative commands:

- !search <query>  search the web and list numbered results
- !open <n>        open search result n
- !link <n>        follow link n on the current page
- !more            show the next chunk of the current page
- !back            return to the search results
- !summarize       ask the conversational model to summarize the current page
- !exit            leave browse mode

Key Components:
- tools.web_browser: the stateful navigation engine (sessions, search, page extraction)
- message_service: routes inbound text to utility commands, the navigation engine or the LLM
- llm: provider registry and per-user conversation history
- adapters: console and HTTP transports

Usage:
    # Interactive console
    python -m chatnav.chat

    # HTTP transport on port 8080
    python -m chatnav.chat --http --port 8080
"""
