# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa


from sigil.core.result import CompilationResult


def log_compilation_summary(logger, result: CompilationResult):
    metrics = result.metrics
    if not result.success:
        logger.log(f"Compilation failed ({result.metadata.get('error_kind')}): {result.error}")

    logger.log(f"Compilation finished in {metrics.get('compilation_duration', 0.0):.3f}s")
    if "training_set_size" in metrics:
        logger.log(f"Training set size: {metrics['training_set_size']}")
    if "traces_collected" in metrics:
        logger.log(f"Traces collected: {metrics['traces_collected']}")
    if "original_modules_count" in metrics:
        logger.log(
            f"Modules: {metrics['original_modules_count']} original, "
            f"{metrics.get('optimized_modules_count', 0)} optimized"
        )
    if "success_rate" in metrics:
        logger.log(f"Trace success rate: {metrics['success_rate']:.2%}")
    logger.log(f"Optimization score: {result.optimization_score}")
