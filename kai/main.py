"""
Kai 言語学習コーチ - メインエントリーポイント
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# 環境変数の読み込み
from dotenv import load_dotenv

from kai.config import KaiConfig, setup_logging
from kai.core.subtitles import subtitle_timeline
from kai.models.schemas import Level, PipelineInput, SpeechProvider, TargetLanguage
from kai.services.api_check_service import APICheckService
from kai.services.coach_service import CoachService


def build_parser(config: KaiConfig) -> argparse.ArgumentParser:
    """コマンドライン引数の定義"""
    parser = argparse.ArgumentParser(prog="kai", description="Kai language coach")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="メッセージに対する回答・訂正・語彙を表示")
    chat.add_argument("message")
    chat.add_argument("--target", choices=[t.value for t in TargetLanguage], default=config.default_target_language)
    chat.add_argument("--level", choices=[lv.value for lv in Level], default=config.default_level)
    chat.add_argument("--no-corrections", action="store_true")
    chat.add_argument("--no-hints", action="store_true")
    chat.add_argument("--model", default=None)
    chat.add_argument("--stream", action="store_true", help="回答をストリーミングし、後処理で語彙を抽出")

    speech = sub.add_parser("speech", help="録音ファイルの発音フィードバックを表示")
    speech.add_argument("file", type=Path)
    speech.add_argument("--target", choices=[t.value for t in TargetLanguage], default=config.default_target_language)
    speech.add_argument("--provider", choices=[p.value for p in SpeechProvider], default=SpeechProvider.OPENAI.value)

    speak = sub.add_parser("speak", help="テキストを読み上げ音声（MP3）にし、字幕タイムラインを表示")
    speak.add_argument("text")
    speak.add_argument("--out", type=Path, default=Path("kai_speech.mp3"))
    speak.add_argument("--provider", choices=[p.value for p in SpeechProvider], default=SpeechProvider.OPENAI.value)
    speak.add_argument("--voice", default=None)
    speak.add_argument("--speed", type=float, default=1.0)

    sub.add_parser("check", help="外部APIの設定状況を表示")
    return parser


async def run_chat(service: CoachService, args: argparse.Namespace) -> dict:
    pipeline_input = PipelineInput(
        user_text=args.message,
        target_language=args.target,
        level=args.level,
        enable_corrections=not args.no_corrections,
        enable_hints=not args.no_hints,
    )
    if not args.stream:
        response = await service.reply(pipeline_input, model=args.model)
        return response.to_dict()

    # 1段階目：回答をストリーミング表示、2段階目：確定した回答から語彙などを抽出
    chunks: list[str] = []
    async for delta in service.stream_reply(pipeline_input, model=args.model):
        chunks.append(delta)
        print(delta, end="", flush=True)
    print()
    params = service.post_process_params(pipeline_input, "".join(chunks))
    response = await service.post_process(params)
    return response.to_dict()


async def run_speak(service: CoachService, args: argparse.Namespace) -> dict:
    audio = await service.speak(args.text, voice=args.voice, speed=args.speed, provider=args.provider)
    args.out.write_bytes(audio)
    timeline = [word.model_dump(by_alias=True, exclude_none=True) for word in subtitle_timeline(args.text)]
    return {"audio": str(args.out), "bytes": len(audio), "timeline": timeline, "provider": args.provider}


async def run_speech(service: CoachService, args: argparse.Namespace) -> dict:
    audio_format = args.file.suffix.lstrip(".").lower() or "wav"
    analysis = await service.analyze_speech(
        args.file.read_bytes(),
        target_language=args.target,
        provider=args.provider,
        audio_format=audio_format,
    )
    return analysis.model_dump(by_alias=True, exclude_none=True)


def main(argv: list[str] | None = None) -> int:
    """アプリケーションの起動"""
    # .envファイルの読み込み（カレントディレクトリから）
    load_dotenv()
    setup_logging()
    config = KaiConfig.from_env()
    args = build_parser(config).parse_args(argv)

    if args.command == "check":
        result: object = APICheckService(config).check_all_apis()
    else:
        service = CoachService(config)
        if args.command == "chat":
            result = asyncio.run(run_chat(service, args))
        elif args.command == "speak":
            result = asyncio.run(run_speak(service, args))
        else:
            result = asyncio.run(run_speech(service, args))

    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
