# llmbridge

One set of chat types (messages, tool calls, stream deltas, response
metadata) shared by clients for two LLM providers, and helpers that convert
search schemas, queries, documents and results to and from Algolia's formats.

## Install

```
pip install llmbridge
```

For the tests:

```
pip install "llmbridge[test]"
pytest
```

## Chat types

`llmbridge.types` holds the provider-neutral types:

- `Message` (a `Role` plus a list of content parts: plain strings, `ImageUrl`
  or `ImageSource` with raw bytes and a MIME type);
- `Config` (model, temperature, max tokens, stop sequences, tools, tool choice
  and `provider_options`, given as pairs or a mapping);
- `ToolDefinition`, `ToolCall`, `ToolSuccess`, `ToolFailure`;
- `CompleteResponse`, `ToolRequest`, `StreamDelta`, `ResponseMetadata`, `Usage`;
- `LlmError`, an exception with an `ErrorCode`, a message and, when available,
  `provider_error_json`.

`error_code_from_status` maps an HTTP status to an `ErrorCode`, and
`api_key_from_env` reads a key from the environment, raising `LlmError` when
it is missing.

## Chat

The provider modules are `llmbridge.openai` (the OpenAI Responses API) and
`llmbridge.openrouter` (OpenRouter chat completions). Each offers `send`,
`continue_chat` and `stream`, taking a list of `Message` objects and a
`Config`. The key may be passed as `api_key`; otherwise it is read from
`OPENAI_API_KEY` or `OPENROUTER_API_KEY`.

```python
from llmbridge.types import Config, Message, Role
from llmbridge import openai

messages = [Message(role=Role.USER, content=["What is the capital of France?"])]
config = Config(model="gpt-4o-mini")

event = openai.send(messages, config, api_key="placeholder")
```

`send` and `continue_chat` return a `CompleteResponse` (text content, any tool
calls and metadata) or a `ToolRequest` when the model gives no text and only
asks for tools. Failures, whether from HTTP, from an error the provider
reports, or from a tool schema that is not valid JSON, are raised as
`LlmError`.

### Tools

Describe each tool with a `ToolDefinition` whose `parameters_schema` is a
JSON Schema string. After running the tools, pass pairs of (`ToolCall`,
`ToolSuccess` or `ToolFailure`) to `continue_chat`.

### Streaming

`stream` returns an `OpenAIChatStream` or `OpenRouterChatStream`. Iterating
over it yields `StreamDelta` objects and ends with a `ResponseMetadata`.
A failure reported in the stream, or a malformed event, is raised as
`LlmError`.

With OpenRouter, tool-call arguments that arrive in fragments are joined and
emitted as whole `ToolCall` objects once a later chunk no longer mentions
them. `llmbridge.openrouter.retry_prompt` builds a conversation asking the
model to carry on from a partial response that was cut off.

### Provider options

`Config.provider_options` passes extra settings: `top_p` and `user` for
OpenAI; `frequency_penalty`, `presence_penalty`, `repetition_penalty`,
`seed`, `top_p`, `top_k`, `min_p` and `top_a` for OpenRouter. A value that
cannot be parsed is left out of the request.

### Lower-level pieces

- `llmbridge.openai_client.ResponsesApi` and
  `llmbridge.openrouter_client.CompletionsApi` send requests with an optional
  `requests.Session`;
- `llmbridge.openai_conversions` and `llmbridge.openrouter_conversions` turn
  the shared types into request bodies and responses back into chat events;
- `llmbridge.sse.iter_sse_data` yields the data payloads of a server-sent
  event stream.

## Search (Algolia)

`llmbridge.algolia_models` defines the schema, query, document and result
types, `SearchError` with its `SearchErrorCode`, and the Algolia-side
settings, query, hit and result types. `llmbridge.algolia_conversions`:

- `schema_to_index_settings` turns a `Schema` into `AlgoliaIndexSettings`;
- `search_query_to_algolia_query` turns a `SearchQuery` into an
  `AlgoliaSearchQuery` (facet filters ORed within a field, ANDed across
  fields; comma-separated sort fields and orders);
- `document_to_algolia_object` and `algolia_object_to_document` convert
  documents both ways (a document without an id gets a UUID; invalid JSON
  raises `ValueError`);
- `algolia_results_to_search_results` and `algolia_hit_to_search_hit` turn
  Algolia results into `SearchResults`.

`llmbridge.algolia_query` adds `create_complex_filter`,
`create_advanced_facet_filters`, `configure_advanced_highlighting`,
`configure_custom_ranking`, `configure_attribute_retrieval`,
`apply_provider_query_params`, and `map_algolia_error`, which returns a
`SearchError` classified from an error's message.

## What it does not do

There is no Algolia HTTP client: the package builds and reads Algolia data
but does not create indexes, store documents or run searches itself. There
is no command-line tool; everything is used as a library.