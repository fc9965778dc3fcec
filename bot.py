#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
import asyncio
import logging
from pathlib import Path
from dotenv import load_dotenv

from telegram import Update
from telegram.ext import Application, MessageHandler, CommandHandler, filters, ContextTypes

from hypem_resolver import load_config, resolve_track

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO"),
    format="%(asctime)s | %(levelname)s | hypem-resolver | %(message)s",
)
logger = logging.getLogger(__name__)

def _env(s: str) -> str:
    return (os.getenv(s) or "").strip().strip('"').strip("'")

def build_reply(text: str) -> str:
    # config is re-read per message so a rotated HYPEM_AUTH_COOKIE is picked up
    url = resolve_track(text, load_config())
    if not url:
        return "⚠️ Could not resolve a hosting URL for this track."
    return f"✅ {url}"

async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text("Send me a hypem.com/track/<id> link or a bare hypem id.")

async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = (update.message.text or "").strip()
    if not text:
        return
    logger.info("Resolving %s", text)
    # resolving is blocking requests I/O, keep it off the event loop
    reply = await asyncio.to_thread(build_reply, text)
    await update.message.reply_text(reply)

def build_app(token: str) -> Application:
    app = Application.builder().token(token).build()
    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(MessageHandler(filters.TEXT & (~filters.COMMAND), handle_text))
    return app

def main():
    load_dotenv(Path(__file__).with_name(".env"))
    token = _env("TELEGRAM_BOT_TOKEN")
    if not token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")
    if not _env("HYPEM_AUTH_COOKIE"):
        logger.warning("HYPEM_AUTH_COOKIE is not set, tracks off soundcloud will likely not resolve")

    app = build_app(token)
    public_url = _env("PUBLIC_URL")
    if not public_url:
        logger.info("hypem bot: polling")
        app.run_polling(allowed_updates=[Update.MESSAGE])
        return

    port = int(_env("PORT") or "8080")
    url_path = _env("WEBHOOK_PATH").strip("/")
    logger.info("hypem bot: webhook %s -> 0.0.0.0:%s/%s", public_url, port, url_path)
    app.run_webhook(
        listen="0.0.0.0",
        port=port,
        url_path=url_path,
        webhook_url=public_url,
        allowed_updates=[Update.MESSAGE],
    )

if __name__ == "__main__":
    main()
