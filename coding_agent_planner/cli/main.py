#!/usr/bin/env python3
"""
Interfaz CLI para Coding Agent Planner
Planes paso a paso, parches y reconstrucción de archivos desde la terminal
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from ..config.settings import settings
from ..core.ai_client import PlannerOrchestrator
from ..core.export import EXPORT_FORMAT_VALUES, ExportOptions, export_accepted_changes, generate_combined_patch
from ..core.models import PatchPayload, Plan
from ..core.parsers import normalize_step_execution
from ..core.reconstruction import bundle_ready_files, ready_files_filename
from ..core.state import load_session
from ..exceptions import PlannerException
from ..utils.context_splitter import split_code_context
from ..utils.diff_parser import diff_stats, parse_diff
from ..utils.patcher import apply_unified_diff


# Helper function for JSON serialization
def json_dumps(obj):
    return json.dumps(obj, ensure_ascii=False, indent=2)


def _read_source(path: Optional[str], use_stdin: bool = False) -> str:
    if use_stdin or path == "-":
        return sys.stdin.read()
    if not path:
        return ""
    return Path(path).read_text(encoding="utf-8")


def _load_executions(path: str) -> List[PatchPayload]:
    """Lee ejecuciones desde JSON: una lista de objetos o un objeto {step_id: ejecución}."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = [dict(v, step_id=k) for k, v in data.items()]
    executions = [PatchPayload.from_dict(item) for item in data]
    # Sin step_id, cada ejecución cuenta como un paso propio
    for i, execution in enumerate(executions, start=1):
        if not execution.step_id:
            execution.step_id = f"#{i}"
    return executions


def _contained_path(root: Path, filename: str) -> Path:
    """Ruta de filename dentro de root; rechaza rutas absolutas o que escapen con '..'."""
    target = (root / filename).resolve()
    if root not in target.parents:
        raise ValueError(f"Ruta fuera del directorio de salida: {filename}")
    return target


class CLI:
    """Interfaz de línea de comandos principal"""

    def __init__(self):
        self.orchestrator = PlannerOrchestrator()

    def setup_parser(self) -> argparse.ArgumentParser:
        """Configura el parser de argumentos"""
        parser = argparse.ArgumentParser(
            description="Coding Agent Planner - Planes y parches de código con IA",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Ejemplos de uso:
  %(prog)s plan "Agregar validación de email" -c app.py -o plan.json
  %(prog)s execute-step plan.json step_1 -c app.py -o step_1.json
  %(prog)s reconstruct -c context.md -e executions.json --out-dir fixed/
  %(prog)s export plan.json -e executions.json -a step_1 step_2 --format git_patch
            """
        )

        parser.add_argument(
            '--debug', action='store_true', help='Registra payloads y respuestas de la API'
        )

        subparsers = parser.add_subparsers(dest='command', help='Comandos disponibles')

        # Dividir contexto en archivos
        sp = subparsers.add_parser('split', help='Divide un contexto de código en archivos')
        sp.add_argument('context', help='Archivo con el contexto (o - para STDIN)')
        sp.add_argument('--json', action='store_true', help='Salida en JSON')

        # Parsear diff para revisión
        pd = subparsers.add_parser('parse-diff', help='Muestra un parche con números de línea')
        pd.add_argument('patch', help='Archivo de parche (o - para STDIN)')
        pd.add_argument('--format', choices=['unified_diff', 'full_file'], default='unified_diff')
        pd.add_argument('--json', action='store_true', help='Salida en JSON')

        # Aplicar parche sobre un archivo
        ap = subparsers.add_parser('apply-patch', help='Aplica un parche al contenido de un archivo')
        ap.add_argument('original', help='Archivo original')
        srcgrp = ap.add_mutually_exclusive_group(required=True)
        srcgrp.add_argument('-f', '--file', dest='patch_file', help='Archivo de parche (.patch/.diff)')
        srcgrp.add_argument('--stdin', action='store_true', help='Leer parche desde STDIN')
        ap.add_argument('-o', '--output', help='Destino (por defecto: STDOUT)')

        # Normalizar respuesta cruda del modelo
        nm = subparsers.add_parser('normalize', help='Recupera el parche de una respuesta cruda del modelo')
        nm.add_argument('response', help='Archivo con la respuesta (o - para STDIN)')
        nm.add_argument('--step-id', help='Id de paso a forzar en el resultado')

        # Reconstruir archivos
        rc = subparsers.add_parser('reconstruct', help='Aplica ejecuciones aceptadas y reconstruye archivos')
        rc.add_argument('-c', '--context', required=True, help='Archivo con el contexto de código')
        rc.add_argument('-e', '--executions', required=True, help='JSON con las ejecuciones aceptadas (en orden)')
        rc.add_argument('-a', '--accepted', nargs='*', help='Ids aceptados, en orden de aplicación (por defecto: todos)')
        rc.add_argument('--out-dir', help='Escribe cada archivo corregido en este directorio')
        rc.add_argument('--bundle', help='Escribe todos los archivos en un único archivo de texto')

        # Generar plan
        pl = subparsers.add_parser('plan', help='Genera un plan a partir de una intención')
        pl.add_argument('intent', help='Qué cambio se quiere implementar')
        pl.add_argument('-c', '--context', help='Archivo con el contexto de código (opcional)')
        pl.add_argument('-o', '--output', help='Guardar el plan en JSON')

        # Ejecutar paso
        ex = subparsers.add_parser('execute-step', help='Genera el parche de un paso del plan')
        ex.add_argument('plan', help='Plan en JSON')
        ex.add_argument('step_id', help='Id del paso a ejecutar')
        ex.add_argument('-c', '--context', required=True, help='Archivo con el contexto de código')
        ex.add_argument('-o', '--output', help='Guardar la ejecución en JSON')

        # Exportar parche combinado
        exp = subparsers.add_parser('export', help='Exporta los pasos aceptados como un único .patch')
        exp.add_argument('plan', help='Plan en JSON')
        exp.add_argument('-e', '--executions', required=True, help='JSON con las ejecuciones')
        exp.add_argument('-a', '--accepted', nargs='*', help='Ids aceptados (por defecto: todos con ejecución)')
        exp.add_argument('--format', choices=EXPORT_FORMAT_VALUES, default='unified_diff')
        exp.add_argument('--no-metadata', action='store_true', help='Omitir cabecera y comentarios')
        exp.add_argument('--out-dir', help='Directorio donde guardar el .patch (por defecto: STDOUT)')
        exp.add_argument('--filename', help='Nombre del archivo .patch')

        # Configuración
        subparsers.add_parser('config', help='Muestra la configuración actual')

        return parser

    def run_split(self, args):
        """Divide el contexto y lista los archivos detectados"""
        try:
            result = split_code_context(_read_source(args.context))
            if args.json:
                print(json_dumps(result.to_dict()))
                return 0
            if not result.files:
                print("⚠️  Contexto vacío")
                return 0
            print(f"📂 {len(result.files)} archivo(s) detectados:")
            for f in result.files:
                lines = len(f.content.split("\n"))
                print(f" - {f.filename} [{f.language}] {lines} líneas")
            return 0
        except Exception as e:
            print(f"❌ Error al dividir el contexto: {e}")
            return 1

    def run_parse_diff(self, args):
        """Muestra el parche con números de línea"""
        try:
            lines = parse_diff(_read_source(args.patch), args.format)
            stats = diff_stats(lines)
            if args.json:
                print(json_dumps({"lines": [l.to_dict() for l in lines], "stats": stats}))
                return 0
            for line in lines:
                old = "" if line.old_line_number is None else str(line.old_line_number)
                new = "" if line.new_line_number is None else str(line.new_line_number)
                marker = {"addition": "+", "deletion": "-"}.get(line.kind.value, " ")
                print(f"{old:>5} {new:>5} {marker} {line.text}")
            print(f"\n📊 {stats['lines']} líneas, +{stats['additions']} / -{stats['deletions']}")
            return 0
        except Exception as e:
            print(f"❌ Error al parsear el diff: {e}")
            return 1

    def run_apply_patch(self, args):
        """Aplica un parche al contenido de un archivo"""
        try:
            original = Path(args.original).read_text(encoding='utf-8')
            patch_text = _read_source(args.patch_file, args.stdin)
            result = apply_unified_diff(original, patch_text)
            if args.output:
                Path(args.output).write_text(result, encoding='utf-8')
                print(f"✅ Escrito: {args.output}")
            else:
                print(result)
            return 0
        except Exception as e:
            print(f"❌ Error al aplicar el parche: {e}")
            return 1

    def run_normalize(self, args):
        """Recupera un parche estructurado desde la respuesta cruda del modelo"""
        try:
            payload, tier = normalize_step_execution(_read_source(args.response))
            if args.step_id:
                payload.step_id = args.step_id
            print(json_dumps(payload.to_dict()))
            print(f"ℹ️  Recuperado en el nivel {tier}", file=sys.stderr)
            return 0
        except PlannerException as e:
            print(f"❌ {e}")
            return 2
        except Exception as e:
            print(f"❌ Error al leer la respuesta: {e}")
            return 1

    def run_reconstruct(self, args):
        """Reconstruye los archivos corregidos"""
        try:
            session = load_session(
                code_context=_read_source(args.context),
                executions=_load_executions(args.executions),
                accepted=args.accepted or None,
            )
            files = session.reconstructed_files()
            if not files:
                print("⚠️  El contexto no contiene archivos")
                return 0

            for f in files:
                print(f"📄 {f.filename}: {f.changes_summary}")
                if f.patches_failed or f.skipped_deletions:
                    print(f"   ⚠️  {f.patches_failed} parche(s) fallidos, "
                          f"{f.skipped_deletions} borrado(s) fuera de rango")

            if args.out_dir:
                out = Path(args.out_dir).resolve()
                # Validar todas las rutas antes de escribir nada
                targets = [(_contained_path(out, f.filename), f) for f in files]
                for target, f in targets:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_text(f.corrected_content, encoding='utf-8')
                print(f"✅ Archivos escritos en {out}")
            if args.bundle:
                Path(args.bundle).write_text(bundle_ready_files(files), encoding='utf-8')
                print(f"✅ Bundle escrito: {args.bundle} ({ready_files_filename(files)})")
            return 0
        except Exception as e:
            print(f"❌ Error en la reconstrucción: {e}")
            return 1

    def run_plan(self, args):
        """Genera un plan con el servicio AI"""
        try:
            context = _read_source(args.context) if args.context else None
            plan = self.orchestrator.generate_plan(args.intent, context, debug=args.debug)
            data = plan.to_dict()
            if args.output:
                Path(args.output).write_text(json_dumps(data), encoding='utf-8')
                print(f"📝 Plan guardado: {args.output}")
            else:
                print(json_dumps(data))
            return 0
        except PlannerException as e:
            print(f"❌ Error al generar el plan: {e}")
            return 2
        except Exception as e:
            print(f"❌ Error al generar el plan: {e}")
            return 1

    def run_execute_step(self, args):
        """Ejecuta un paso del plan"""
        try:
            plan = Plan.from_dict(json.loads(Path(args.plan).read_text(encoding='utf-8')))
            step = next((s for s in plan.steps if s.id == args.step_id), None)
            if step is None:
                print(f"❌ Paso no encontrado: {args.step_id}")
                return 1
            payload = self.orchestrator.execute_step(step, _read_source(args.context), debug=args.debug)
            data = payload.to_dict()
            if args.output:
                Path(args.output).write_text(json_dumps(data), encoding='utf-8')
                print(f"📝 Ejecución guardada: {args.output}")
            else:
                print(json_dumps(data))
            return 0
        except PlannerException as e:
            print(f"❌ Error al ejecutar el paso: {e}")
            return 2
        except Exception as e:
            print(f"❌ Error al ejecutar el paso: {e}")
            return 1

    def run_export(self, args):
        """Exporta los pasos aceptados como un parche combinado"""
        try:
            plan = Plan.from_dict(json.loads(Path(args.plan).read_text(encoding='utf-8')))
            session = load_session(
                plan=plan,
                executions=_load_executions(args.executions),
                accepted=args.accepted or None,
            )
            items = session.accepted_steps()
            options = ExportOptions(
                format=args.format,
                include_metadata=not args.no_metadata,
                filename=args.filename,
            )
            if args.out_dir:
                path = export_accepted_changes(plan, items, args.out_dir, options)
                print(f"📝 Parche exportado: {path}")
            else:
                print(generate_combined_patch(plan, items, options))
            return 0
        except (PlannerException, OSError, ValueError, KeyError) as e:
            print(f"❌ Error al exportar: {e}")
            return 1

    def run_config(self, args):
        """Muestra la configuración actual"""
        key = settings.groq_api_key or ""
        masked = ("*" * max(0, len(key) - 4)) + key[-4:] if key else "(no configurada)"
        print("⚙️  Configuración actual:")
        print(f"   Modelo: {settings.groq_model}")
        print(f"   Endpoint: {settings.groq_base_url}")
        print(f"   API key: {masked}")
        print(f"   Max tokens: {settings.groq_max_tokens}  Temperatura: {settings.groq_temperature}")
        print(f"   Timeout: {settings.request_timeout}s  Reintentos: {settings.max_retries}")
        return 0

    def run(self, argv=None):
        """Ejecuta la interfaz CLI"""
        parser = self.setup_parser()
        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return 0

        # Mapear comandos a métodos
        command_map = {
            'split': self.run_split,
            'parse-diff': self.run_parse_diff,
            'apply-patch': self.run_apply_patch,
            'normalize': self.run_normalize,
            'reconstruct': self.run_reconstruct,
            'plan': self.run_plan,
            'execute-step': self.run_execute_step,
            'export': self.run_export,
            'config': self.run_config,
        }

        command_func = command_map.get(args.command)
        if command_func:
            return command_func(args)
        else:
            print(f"❌ Comando desconocido: {args.command}")
            return 1


def main():
    """Función principal"""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
