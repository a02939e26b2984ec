import json
import re
import logging
import requests
from google import genai
from google.genai import types
from openai import OpenAI

from .. import config

logger = logging.getLogger(__name__)

class LLMUnavailable(Exception):
    """Raised when no configured provider produced an answer."""

# Initialize Clients
gateway_client = None
if config.AI_GATEWAY_API_KEY:
    gateway_client = OpenAI(
        base_url=config.AI_GATEWAY_URL,
        api_key=config.AI_GATEWAY_API_KEY,
    )

gemini_client = None
if config.GOOGLE_API_KEY:
    try:
        gemini_client = genai.Client(api_key=config.GOOGLE_API_KEY)
    except Exception as e:
        logger.warning("Gemini client init failed: %s", e)

def extract_json(text: str):
    """
    Robustly extracts the first JSON object found in a string.
    Useful for models that return conversational text around JSON.
    """
    if not text:
        return None
    try:
        # Try direct parse first
        return json.loads(text.strip())
    except json.JSONDecodeError:
        pass

    # Try finding JSON block
    match = re.search(r'\{.*\}', text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    return None

def try_gateway(prompt: str, system: str = None) -> str:
    if not gateway_client:
        return ""

    messages = [{"role": "user", "content": prompt}]
    if system:
        messages.insert(0, {"role": "system", "content": system})

    try:
        completion = gateway_client.chat.completions.create(
            model=config.AI_GATEWAY_MODEL,
            messages=messages,
        )
        return completion.choices[0].message.content or ""
    except Exception as e:
        logger.warning("AI gateway failed: %s", e)
    return ""

def try_gemini(prompt: str, system: str = None, is_json: bool = False) -> str:
    if not gemini_client:
        return ""

    try:
        generate_config = types.GenerateContentConfig(
            system_instruction=system,
            response_mime_type="application/json" if is_json else None,
        )
        response = gemini_client.models.generate_content(
            model=config.GEMINI_MODEL,
            contents=prompt,
            config=generate_config,
        )
        return response.text or ""
    except Exception as e:
        logger.warning("Gemini failed: %s", e)
    return ""

def try_ollama(prompt: str, system: str = None, is_json: bool = False) -> str:
    """
    Final fallback to a local Ollama server. Tries each configured model in sequence.
    """
    if not config.OLLAMA_URL:
        return ""

    url = config.OLLAMA_URL.rstrip("/") + "/api/chat"
    messages = [{"role": "user", "content": prompt}]
    if system:
        messages.insert(0, {"role": "system", "content": system})

    for model in config.OLLAMA_MODELS:
        try:
            logger.info("Attempting Ollama with model %s", model)
            payload = {"model": model, "messages": messages, "stream": False}
            if is_json:
                payload["format"] = "json"

            response = requests.post(url, json=payload, timeout=120)
            if response.status_code == 200:
                return response.json().get("message", {}).get("content", "")
            logger.warning("Ollama %s failed: status %s", model, response.status_code)
        except requests.RequestException as e:
            logger.warning("Ollama fallback for %s failed: %s", model, e)

    return ""

def generate_text(prompt: str, system: str = None, is_json: bool = False) -> str:
    """
    Priority: AI gateway -> Gemini -> Ollama.
    Raises LLMUnavailable when every provider is missing or failed.
    """
    # 1. Try the AI gateway
    text = try_gateway(prompt, system)
    if text:
        return text

    # 2. Try Gemini
    text = try_gemini(prompt, system, is_json)
    if text:
        return text

    # 3. Final fallback: Ollama
    text = try_ollama(prompt, system, is_json)
    if text:
        return text

    raise LLMUnavailable("No AI provider configured or reachable")
