import os
import json
import logging
from typing import Any, Dict, List, Optional

from groq import Groq

from Connexa.whatsapp_session.errors import AIResponseError, AIServiceNotConfiguredError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful WhatsApp assistant. Respond naturally and conversationally."


class WhatsAppAIAgent:
    """
    LLM enrichment for WhatsApp chats using Groq.
    - Uses the reasoning model for free-form answers and the fast model for JSON classification.
    - Conversation memory per chat comes from the ChatHistoryManager.
    """

    def __init__(self, groq_api_key: Optional[str], history_manager,
                 model: str = "llama-3.3-70b-versatile",
                 fast_model: str = "llama-3.1-8b-instant",
                 vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct",
                 transcribe_model: str = "whisper-large-v3"):
        self.history_manager = history_manager
        self.model = model
        self.fast_model = fast_model
        self.vision_model = vision_model
        self.transcribe_model = transcribe_model
        self.client = Groq(api_key=groq_api_key) if groq_api_key else None

    @property
    def configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> Groq:
        if self.client is None:
            raise AIServiceNotConfiguredError()
        return self.client

    def _complete(self, messages, model=None, max_tokens=500, json_mode=False, temperature=None):
        kwargs = {
            "model": model or self.model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if temperature is not None:
            kwargs["temperature"] = temperature
        return self._require_client().chat.completions.create(**kwargs)

    def _complete_json(self, messages, max_tokens=300) -> Dict[str, Any]:
        response = self._complete(messages, model=self.fast_model, max_tokens=max_tokens, json_mode=True)
        content = response.choices[0].message.content
        try:
            return json.loads(content)
        except (TypeError, json.JSONDecodeError) as e:
            logger.error(f"Model returned invalid JSON: {e}")
            raise AIResponseError("AI returned an invalid JSON response") from e

    # --- Conversation ---

    def generate_response(self, phone: str, chat_id: str, user_message: str,
                          system_prompt: str = DEFAULT_SYSTEM_PROMPT, max_tokens: int = 500,
                          include_history: bool = True, remember: bool = True) -> Dict[str, Any]:
        messages = [{"role": "system", "content": system_prompt}]

        if include_history:
            history = self.history_manager.get_history(phone, chat_id)
            messages.extend({"role": h["role"], "content": h["content"]} for h in history[-10:])

        messages.append({"role": "user", "content": user_message})

        response = self._complete(messages, max_tokens=max_tokens)
        reply = response.choices[0].message.content

        if remember:
            self.history_manager.add_exchange(phone, chat_id, user_message, reply)

        return {
            "reply": reply,
            "usage": response.usage.model_dump() if response.usage else None,
            "model": response.model,
        }

    def auto_reply(self, phone: str, chat_id: str, message: str, settings: Optional[Dict] = None) -> Optional[Dict[str, Any]]:
        settings = settings or {}
        if not settings.get("autoReplyEnabled", True):
            return None

        personality = settings.get("personality", "friendly and helpful")
        language = settings.get("language", "auto-detect")
        context_window = int(settings.get("contextWindow", 5))

        system_prompt = (
            f"You are an auto-reply bot for WhatsApp. Be {personality}.\n"
            f"Respond in {'the same language as the user' if language == 'auto-detect' else language}.\n"
            "Keep responses brief and natural (1-3 sentences max)."
        )
        history = self.history_manager.get_history(phone, chat_id)[-context_window:] if context_window > 0 else []
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": h["role"], "content": h["content"]} for h in history)
        messages.append({"role": "user", "content": message})

        response = self._complete(messages, max_tokens=300)
        reply = response.choices[0].message.content
        self.history_manager.add_exchange(phone, chat_id, message, reply)

        return {"reply": reply, "confidence": 0.9, "shouldSend": bool(reply)}

    def summarize_conversation(self, phone: str, chat_id: str, message_count: int = 20) -> str:
        history = self.history_manager.get_history(phone, chat_id)[-message_count:]
        if not history:
            return "No conversation history available."

        conversation_text = "\n".join(
            f"{'User' if m['role'] == 'user' else 'Assistant'}: {m['content']}" for m in history
        )
        response = self._complete([
            {"role": "system",
             "content": "Summarize the following conversation concisely, highlighting key points and action items."},
            {"role": "user", "content": conversation_text},
        ], max_tokens=500)
        return response.choices[0].message.content

    def compose(self, phone: str, chat_id: str, context: str, tone: Optional[str] = None) -> str:
        result = self.generate_response(
            phone, chat_id, context,
            system_prompt=(f"You are a writing assistant. Help compose a message based on the context. "
                           f"Use a {tone or 'friendly'} tone. Be concise and natural."),
            max_tokens=300,
            include_history=True,
            remember=False,
        )
        return result["reply"]

    # --- Analysis ---

    def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        return self._complete_json([
            {"role": "system",
             "content": "You are a sentiment analysis expert. Analyze the sentiment and respond with JSON: "
                        "{ \"sentiment\": \"positive\"|\"negative\"|\"neutral\", \"score\": 0-1, "
                        "\"emotions\": [\"emotion1\", \"emotion2\"] }"},
            {"role": "user", "content": text},
        ])

    def generate_smart_reply(self, last_message: str, sender_name: str = "User", relationship: str = "friend") -> List[str]:
        result = self._complete_json([
            {"role": "system",
             "content": f"You are generating a smart reply suggestion for a WhatsApp chat.\n"
                        f"The sender is a {relationship}. Generate 3 short, appropriate reply suggestions "
                        f"(max 10 words each).\nRespond with JSON: {{ \"suggestions\": [\"reply1\", \"reply2\", \"reply3\"] }}"},
            {"role": "user", "content": f"{sender_name} said: \"{last_message}\""},
        ], max_tokens=200)
        return result.get("suggestions", [])

    def moderate(self, text: str) -> Dict[str, Any]:
        return self._complete_json([
            {"role": "system",
             "content": "You are a content moderator. Analyze the following text for inappropriate content, "
                        "hate speech, spam, or harmful material. Respond with JSON: "
                        "{ \"safe\": true/false, \"reason\": \"explanation\", \"categories\": [\"category1\"] }"},
            {"role": "user", "content": text},
        ], max_tokens=200)

    def batch_analyze(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        results = []
        for message in messages:
            try:
                sentiment = self.analyze_sentiment(message.get("text", ""))
                results.append({"messageId": message.get("id"), "sentiment": sentiment, "success": True})
            except AIServiceNotConfiguredError:
                raise
            except Exception as e:
                logger.warning(f"Sentiment analysis failed for {message.get('id')}: {e}")
                results.append({"messageId": message.get("id"), "success": False, "error": str(e)})
        return results

    # --- Rewriting ---

    def _rewrite(self, system_prompt: str, text: str, max_tokens: int) -> str:
        response = self._complete([
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": text},
        ], max_tokens=max_tokens)
        return response.choices[0].message.content

    def translate(self, text: str, target_lang: str) -> str:
        return self._rewrite(
            f"Translate the following text to {target_lang}. Return only the translation, no explanations.",
            text, 500)

    def improve(self, text: str, improvements: Optional[List[str]] = None) -> str:
        improvement_types = improvements or ["grammar", "clarity", "tone"]
        return self._rewrite(
            f"Improve the following message for {', '.join(improvement_types)}. "
            "Return only the improved version, no explanations.",
            text, 300)

    # --- Media ---

    def analyze_image(self, base64_image: str, prompt: str = "Describe this image in detail") -> str:
        response = self._complete([
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}},
                ],
            },
        ], model=self.vision_model, max_tokens=1000)
        return response.choices[0].message.content

    def transcribe_audio(self, audio_file_path: str) -> Dict[str, Any]:
        client = self._require_client()
        with open(audio_file_path, "rb") as audio_file:
            transcription = client.audio.transcriptions.create(
                file=(os.path.basename(audio_file_path), audio_file.read()),
                model=self.transcribe_model,
                response_format="verbose_json",
            )
        return {
            "text": transcription.text,
            "duration": getattr(transcription, "duration", None) or 0,
        }
