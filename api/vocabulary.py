from flask import Blueprint, request, jsonify, url_for, send_from_directory, current_app
from services.audio_service import audio_service, AudioServiceUnavailable
from limiter import rate_limiter

vocabulary_api_bp = Blueprint('vocabulary_api', __name__)


@vocabulary_api_bp.route('/<word>/audio', methods=['GET'])
@rate_limiter.limit('API_VOCABULARY_AUDIO')
def get_word_audio(word):
    """Pronunciation audio URL for a word, generated on first request"""
    language = request.args.get('language', 'en').strip().lower() or 'en'
    if not language.isalpha() or len(language) > 10:
        return jsonify({'error': 'Invalid language code'}), 400

    try:
        result = audio_service.get_or_create(word, language)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except AudioServiceUnavailable as e:
        current_app.logger.error(f'Audio generation failed for "{word}": {e}')
        return jsonify({
            'error': 'Audio service unavailable',
            'message': 'Pronunciation audio could not be generated. Please try again later.'
        }), 503

    return jsonify({
        'word': word.strip().lower(),
        'audio_url': url_for('vocabulary_api.serve_audio', storage_key=result.storage_key),
        'cached': result.cached
    })


@vocabulary_api_bp.route('/audio/<path:storage_key>', methods=['GET'])
def serve_audio(storage_key):
    return send_from_directory(
        audio_service.audio_folder(),
        storage_key,
        mimetype='audio/mpeg',
        max_age=60 * 60 * 24 * 30
    )
