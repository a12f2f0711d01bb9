"""
Document Drafting - Command Line Runner
=======================================
Draft one document from a template and a matter file.

Usage:
    python run_draft.py templates/patent-assignment.json matters/acme.json out/ --parallel --quality
"""

import argparse
import json
import sys
from typing import Dict, List

from agents.base import DraftConfig
from agents.collaborators import TfidfRetriever
from agents.contracts import JobConfig, JobFlags, Template, TemplateSection
from orchestrator.runner import create_runner
from utils.execution_logger import ExecutionLogger


def load_template(path: str) -> Template:
    """Load a template definition from JSON."""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    sections = [
        TemplateSection(
            id=s['id'],
            title=s['title'],
            order=s.get('order', i + 1),
            content=s.get('content', ""),
            required=s.get('required', True),
            help_text=s.get('help_text', s.get('helpText', ""))
        )
        for i, s in enumerate(data.get('sections', []))
    ]
    return Template(
        id=data['id'],
        name=data.get('name', data['id']),
        description=data.get('description', ""),
        sections=sections,
        required_fields=data.get('required_fields', data.get('requiredFields', []))
    )


def load_passages(path: str) -> List[Dict]:
    """Load precedent passages (a JSON list of {id, content, source, citation})."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Draft a legal document from a template")
    parser.add_argument("template", help="Template JSON file")
    parser.add_argument("matter", help="Matter data JSON file")
    parser.add_argument("output", help="Output directory or .md file")
    parser.add_argument("--document-type", help="Document type (defaults to the template id)")
    parser.add_argument("--precedent", help="JSON file of precedent passages for retrieval")
    parser.add_argument("--parallel", action="store_true", help="Draft sections concurrently")
    parser.add_argument("--max-parallel", type=int, help="Upper bound on drafting workers")
    parser.add_argument("--quality", action="store_true", help="Run the quality-gated refinement pipeline")
    parser.add_argument("--max-iterations", type=int, help="Refinement budget for the pipeline")
    parser.add_argument("--log-dir", default="logs", help="Where the execution log is saved")
    args = parser.parse_args(argv)

    print("\n" + "="*60)
    print("📝 DOCUMENT DRAFTING")
    print("="*60)

    template = load_template(args.template)
    config = DraftConfig.from_env()
    logger = ExecutionLogger("draft", log_dir=args.log_dir)

    retriever = None
    if args.precedent:
        passages = load_passages(args.precedent)
        retriever = TfidfRetriever(passages, config)
        print(f"   Precedent: {len(passages)} passages")

    runner = create_runner(config=config, logger=logger, retriever=retriever)
    job = JobConfig(
        document_type=args.document_type or template.id,
        input_ref=args.matter,
        output_path=args.output,
        flags=JobFlags(
            parallel=args.parallel,
            max_parallel=args.max_parallel,
            quality_pipeline=args.quality,
            max_iterations=args.max_iterations
        )
    )

    result = runner.run(job, template)
    log_path = logger.save()

    if not result.success:
        print(f"\n❌ Failed at {result.failed_stage}: [{result.error.code.value}] {result.error.message}")
        print(f"   Execution log: {log_path}")
        return 1

    print("\n📊 JOB STATS:")
    print(f"  • Time: {result.metadata.total_processing_time:.2f}s")
    print(f"  • Stages: {' → '.join(result.metadata.execution_order)}")
    print(f"  • Checkpoints: {len(result.metadata.checkpoints)}")
    if result.pipeline:
        usage = result.pipeline['model_usage']
        print(f"  • Quality: {result.pipeline['quality_score']:.1f}/100 ({result.pipeline['status']})")
        print(f"  • Refinements: {result.pipeline['refinements']}")
        print(f"  • Model cost: ${usage['total_cost']:.4f} ({usage['savings_percentage']:.0f}% saved)")
    print(f"\n💾 Output saved to: {result.output.path} ({result.output.size} bytes)")
    print(f"   Execution log: {log_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
