from .speaker_refinement import SpeakerRefiner, apply_reassignments

__all__ = ["SpeakerRefiner", "apply_reassignments"]
