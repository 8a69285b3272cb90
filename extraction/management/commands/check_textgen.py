"""
Django management command to check that translation and rewriting work.

Lists the models on the Ollama host, then translates and rewrites a short
built-in caption through the same code the pipeline uses.

Usage:
    ./manage.py check_textgen
    ./manage.py check_textgen --lang fr --style script
    ./manage.py check_textgen --models-only
"""

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from extraction.service.textgen import REWRITE_STYLES, check_text_generation


class Command(BaseCommand):
    help = 'Run a short translation and rewrite against Ollama and report the result'

    def add_arguments(self, parser):
        parser.add_argument('--lang', default='es', help='Target language for the translation run')
        parser.add_argument(
            '--style', default='tiktok', choices=list(REWRITE_STYLES), help='Style for the rewrite run'
        )
        parser.add_argument(
            '--models-only',
            action='store_true',
            help='Only check that the configured model is installed',
        )

    def handle(self, *args, **options):
        model = settings.VIDSCRIBE_OLLAMA_MODEL
        self.stdout.write(f'Ollama: {settings.VIDSCRIBE_OLLAMA_HOST} (model {model})')

        modes = () if options['models_only'] else ('translate', 'rewrite')
        health = check_text_generation(modes, target_lang=options['lang'], style=options['style'])

        if not health.reachable:
            raise CommandError(f'{health.error}\nTo start Ollama, run: ollama serve')
        self.stdout.write(f'Installed models: {", ".join(health.models) or "none"}')
        if health.error:
            raise CommandError(health.error)

        for step in health.steps:
            label = f'{step.mode} ({options["lang"] if step.mode == "translate" else options["style"]})'
            if step.ok:
                self.stdout.write(
                    self.style.SUCCESS(f'{label}: OK, {step.chars} characters in {step.seconds}s')
                )
            else:
                self.stdout.write(self.style.ERROR(f'{label}: FAILED after {step.seconds}s'))
                self.stdout.write(f'  Error: {step.error}')

        if not health.ready:
            raise CommandError('Text generation is NOT ready. Translation and rewrite steps will fail.')
        self.stdout.write(self.style.SUCCESS('Text generation is ready'))
