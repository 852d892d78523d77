"""
Tool System Module for chatnav

Tools are components that answer user messages directly instead of handing them to
the conversational model. All tools inherit from the base Tool class (tool.py): they
receive an InboundMessage and yield outbound messages, or yield nothing when the
message is not meant for them.

For implementation details, see the individual tool modules:
- tool.py: Base Tool abstract class
- web_browser/: Web search and guided browsing with per-user sessions
"""
