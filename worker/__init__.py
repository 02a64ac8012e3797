"""
Worker: RPC server hosting one conversational LLM session.
"""
